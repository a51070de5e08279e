from typing import Optional

from flask_socketio import join_room, leave_room, emit
from app import socketio

GLOBAL_ROOM = 'leaderboard:global'


def leaderboard_room(game_id: Optional[int] = None) -> str:
    if game_id is None:
        return GLOBAL_ROOM
    return f"leaderboard:game:{int(game_id)}"


def _room_from(data) -> Optional[str]:
    game_id = (data or {}).get('game_id')
    if game_id is None:
        return GLOBAL_ROOM
    try:
        return leaderboard_room(int(game_id))
    except (TypeError, ValueError):
        emit('error', {'message': 'game_id must be an integer'})
        return None


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_join_leaderboard(data):
    room = _room_from(data)
    if not room:
        return
    join_room(room)
    emit('joined', {'room': room})


def handle_leave_leaderboard(data):
    room = _room_from(data)
    if not room:
        return
    leave_room(room)
    emit('left', {'room': room})


def handle_ping(data):
    emit('pong', data or {})


def notify_leaderboards(game_id: int, reason: str) -> None:
    """Tell subscribed clients that the global and per-game boards changed."""
    payload = {'game_id': game_id, 'reason': reason}
    socketio.emit('leaderboard_update', payload, to=GLOBAL_ROOM, namespace='/ws')
    socketio.emit('leaderboard_update', payload, to=leaderboard_room(game_id), namespace='/ws')


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    socketio.on_event('connect', handle_connect, namespace='/ws')
    socketio.on_event('join_leaderboard', handle_join_leaderboard, namespace='/ws')
    socketio.on_event('leave_leaderboard', handle_leave_leaderboard, namespace='/ws')
    socketio.on_event('ping', handle_ping, namespace='/ws')

    if testing:
        # Test-only mirror on default namespace
        socketio.on_event('connect', handle_connect, namespace='/')
        socketio.on_event('join_leaderboard', handle_join_leaderboard, namespace='/')
        socketio.on_event('leave_leaderboard', handle_leave_leaderboard, namespace='/')
        socketio.on_event('ping', handle_ping, namespace='/')
