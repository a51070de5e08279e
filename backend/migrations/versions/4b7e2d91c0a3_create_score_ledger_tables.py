"""create user, game and play_result tables

Revision ID: 4b7e2d91c0a3
Revises:
Create Date: 2026-10-18 10:00:00.000000

"""
from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision = '4b7e2d91c0a3'
down_revision = None
branch_labels = None
depends_on = None


def upgrade():
    bind = op.get_bind()
    insp = sa.inspect(bind)
    existing_tables = set(insp.get_table_names())

    if 'user' not in existing_tables:
        op.create_table(
            'user',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('username', sa.String(length=64), nullable=False),
            sa.Column('password_hash', sa.String(length=256), nullable=False),
            sa.Column('total_points', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('is_admin', sa.Boolean(), nullable=False, server_default=sa.false()),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_user_username', 'user', ['username'], unique=True)
        op.create_index('ix_user_total_points', 'user', ['total_points'])

    if 'game' not in existing_tables:
        op.create_table(
            'game',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(length=128), nullable=False, unique=True),
            sa.Column('category', sa.String(length=32), nullable=False),
            sa.Column('difficulty', sa.String(length=16), nullable=False),
            sa.Column('popularity', sa.Integer(), nullable=False, server_default='0'),
            sa.Column('created_at', sa.DateTime(), nullable=False),
        )
        op.create_index('ix_game_category', 'game', ['category'])
        op.create_index('ix_game_popularity', 'game', ['popularity'])

    if 'play_result' not in existing_tables:
        op.create_table(
            'play_result',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('user.id'), nullable=False),
            sa.Column('game_id', sa.Integer(), sa.ForeignKey('game.id'), nullable=False),
            sa.Column('speed_score', sa.Integer(), nullable=False),
            sa.Column('accuracy_score', sa.Integer(), nullable=False),
            sa.Column('consistency_score', sa.Integer(), nullable=False),
            sa.Column('final_score', sa.Integer(), nullable=False),
            sa.Column('difficulty', sa.String(length=16), nullable=False),
            sa.Column('multiplier', sa.Float(), nullable=False),
            sa.Column('time_taken', sa.Float(), nullable=False),
            sa.Column('submission_key', sa.String(length=128), nullable=True),
            sa.Column('created_at', sa.DateTime(), nullable=False),
            sa.UniqueConstraint('user_id', 'submission_key', name='uq_play_result_user_submission_key'),
        )
        op.create_index('ix_play_result_final_score', 'play_result', ['final_score'])
        op.create_index('ix_play_result_user_created', 'play_result', ['user_id', 'created_at'])
        op.create_index('ix_play_result_game_final', 'play_result', ['game_id', 'final_score'])
        op.create_index('ix_play_result_user_game_final', 'play_result', ['user_id', 'game_id', 'final_score'])


def downgrade():
    op.drop_table('play_result')
    op.drop_table('game')
    op.drop_table('user')
