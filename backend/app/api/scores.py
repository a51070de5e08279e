from flask import Blueprint, jsonify, request, current_app
from flask_login import login_required, current_user
from app.services.scores.composer import breakdown_for_play, skill_impact
from app.services.scores.errors import NotFound, PropagationFailure, StorageFailure, ValidationFailed
from app.services.scores.ingestion import delete_score as svc_delete_score
from app.services.scores.ingestion import load_policy, submit_score as svc_submit_score
from app.services.scores import ledger, ranking
from app.socketio_events import notify_leaderboards


scores = Blueprint('scores', __name__)


def _camel(key):
    head, *rest = key.split('_')
    return head + ''.join(part.title() for part in rest)


def camelize(value):
    """Rewrite service-layer snake_case keys to the API's camelCase, recursively."""
    if isinstance(value, dict):
        return {_camel(key): camelize(item) for key, item in value.items()}
    if isinstance(value, list):
        return [camelize(item) for item in value]
    return value


@scores.errorhandler(ValidationFailed)
def _validation_failed(exc):
    return jsonify({'error': exc.message}), 400


@scores.errorhandler(NotFound)
def _not_found(exc):
    return jsonify({'error': exc.message}), 404


@scores.errorhandler(PropagationFailure)
def _propagation_failed(exc):
    # The play is on record; only the totals are lagging
    return jsonify({
        'message': exc.message,
        'score': camelize(exc.play),
        'pointsEarned': exc.points_earned,
        'aggregatesPending': True,
    }), 202


@scores.errorhandler(StorageFailure)
def _storage_failed(exc):
    return jsonify({'error': exc.message}), 500


def _page_args():
    cfg = current_app.config
    limit = ranking.parse_limit(
        request.args.get('limit'),
        default=int(cfg.get('LEADERBOARD_DEFAULT_LIMIT', 100)),
        cap=int(cfg.get('LEADERBOARD_MAX_LIMIT', 1000)),
    )
    return limit, ranking.parse_offset(request.args.get('offset'))


@scores.route('', methods=['POST'])
@login_required
def submit_score():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationFailed('Request body must be a JSON object')
    result = svc_submit_score(
        current_user.id,
        data.get('gameId'),
        data,
        submission_key=request.headers.get('Idempotency-Key'),
    )
    if result['replayed']:
        return jsonify({
            'message': 'Score already submitted',
            'score': camelize(result['play_result']),
            'breakdown': result['breakdown'],
            'pointsEarned': result['points_earned'],
            'replayed': True,
        }), 200

    notify_leaderboards(result['play_result']['game_id'], 'score_submitted')
    return jsonify({
        'message': 'Score submitted successfully',
        'score': camelize(result['play_result']),
        'breakdown': result['breakdown'],
        'pointsEarned': result['points_earned'],
    }), 201


@scores.route('/<int:score_id>', methods=['DELETE'])
@login_required
def delete_score(score_id):
    if not current_user.is_admin:
        return jsonify({'error': 'Only moderators may delete scores'}), 403
    result = svc_delete_score(score_id)
    notify_leaderboards(result['score']['game_id'], 'score_deleted')
    return jsonify({
        'message': 'Score deleted and user points adjusted',
        'pointsDeducted': result['points_deducted'],
    })


@scores.route('/user', methods=['GET'])
@login_required
def get_user_scores():
    plays = ledger.user_history(current_user.id)
    policy = load_policy()
    history = []
    for play in plays:
        item = play.to_dict()
        item['game_name'] = play.game.name if play.game else None
        item['breakdown'] = breakdown_for_play(play, policy)
        history.append(item)
    return jsonify(camelize({'scores': history, 'summary': ledger.summarize(plays)}))


@scores.route('/user/analytics', methods=['GET'])
@login_required
def get_user_analytics():
    plays = ledger.user_history(current_user.id)
    return jsonify({
        'perGame': camelize(ledger.per_game_stats(current_user.id)),
        'skillImpact': skill_impact(plays),
        'summary': camelize(ledger.summarize(plays)),
    })


def _rank_payload(user_id):
    info = ranking.user_rank(user_id)
    return jsonify({
        'rank': info['rank'],
        'totalPoints': info['total_points'],
        'pointsToNextRank': info['points_to_next_rank'],
    })


@scores.route('/user/rank', methods=['GET'])
@login_required
def get_own_rank():
    return _rank_payload(current_user.id)


@scores.route('/users/<int:user_id>/rank', methods=['GET'])
def get_user_rank(user_id):
    return _rank_payload(user_id)


@scores.route('/leaderboard/global', methods=['GET'])
def get_global_leaderboard():
    limit, offset = _page_args()
    return jsonify(camelize(ranking.global_leaderboard(limit, offset)))


@scores.route('/game/<int:game_id>', methods=['GET'])
def get_game_leaderboard(game_id):
    limit, offset = _page_args()
    return jsonify(camelize(ranking.game_leaderboard(game_id, limit, offset)))
