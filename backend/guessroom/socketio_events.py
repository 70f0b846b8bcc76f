from flask_socketio import emit
from guessroom import socketio
from flask import current_app, request
from guessroom.services.rooms import RoomError, get_room_manager
from typing import Dict, Any


# sid -> {'namespace': ..., 'subs': {room_id: Subscription}, 'players': {room_id: player_id}}
_sid_to_ctx: Dict[str, Dict[str, Any]] = {}


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _ctx() -> Dict[str, Any]:
    return _sid_to_ctx.setdefault(
        _get_sid(), {'namespace': request.namespace, 'subs': {}, 'players': {}}
    )


def _reject(exc: RoomError) -> Dict[str, Any]:
    current_app.logger.info(f"[ws-rejected] sid={_get_sid()} kind={exc.kind} message={exc}")
    emit('room_error', exc.to_dict())
    return {'ok': False, **exc.to_dict()}


def _invalid(message: str) -> Dict[str, Any]:
    payload = {'error': 'InvalidPayload', 'message': message}
    emit('room_error', payload)
    return {'ok': False, **payload}


def _subscribe(room_id: str, viewer_id=None) -> Dict[str, Any]:
    """(Re)subscribe this socket: snapshot first, then ordered room events."""
    sid = _get_sid()
    namespace = request.namespace
    ctx = _ctx()
    previous = ctx['subs'].pop(room_id, None)
    manager = get_room_manager()
    if previous is not None:
        manager.unsubscribe(previous)

    def listener(event_name: str, message: Dict[str, Any]) -> None:
        socketio.emit(event_name, message, to=sid, namespace=namespace)

    snapshot, sub = manager.subscribe(room_id, viewer_id=viewer_id, listener=listener)
    ctx['subs'][room_id] = sub
    return snapshot


def handle_connect():
    emit('connected', {'message': 'Connected to /ws'})


def handle_disconnect(*args):
    # Drop subscriptions and mark any bound players disconnected so they can
    # rejoin later with their score history intact
    ctx = _sid_to_ctx.pop(_get_sid(), None)
    if not ctx:
        return
    manager = get_room_manager()
    for sub in ctx['subs'].values():
        manager.unsubscribe(sub)
    for room_id, player_id in ctx['players'].items():
        try:
            manager.leave(room_id, player_id)
        except RoomError as exc:
            current_app.logger.info(f"[ws-disconnect] room={room_id} player={player_id} skipped: {exc.kind}")


def handle_join_room(data):
    data = data or {}
    room_id = data.get('room_id')
    player_id = data.get('player_id')
    if not room_id or not player_id:
        return _invalid('room_id and player_id are required')
    try:
        player = get_room_manager().join(room_id, str(player_id), data.get('display_name'))
        _ctx()['players'][room_id] = player.id
        snapshot = _subscribe(room_id, viewer_id=player.id)
    except RoomError as exc:
        return _reject(exc)
    return {'ok': True, 'player': player.to_dict(), 'seq': snapshot['seq']}


def handle_subscribe(data):
    data = data or {}
    room_id = data.get('room_id')
    if not room_id:
        return _invalid('room_id is required')
    try:
        snapshot = _subscribe(room_id, viewer_id=data.get('player_id'))
    except RoomError as exc:
        return _reject(exc)
    return {'ok': True, 'seq': snapshot['seq']}


def handle_resync(data):
    # Reconnecting clients get a fresh snapshot rather than a replay of missed events
    data = data or {}
    room_id = data.get('room_id')
    if not room_id:
        return _invalid('room_id is required')
    viewer_id = data.get('player_id') or _ctx()['players'].get(room_id)
    try:
        snapshot = _subscribe(room_id, viewer_id=viewer_id)
    except RoomError as exc:
        return _reject(exc)
    return {'ok': True, 'seq': snapshot['seq']}


def handle_unsubscribe(data):
    room_id = (data or {}).get('room_id')
    if not room_id:
        return _invalid('room_id is required')
    sub = _ctx()['subs'].pop(room_id, None)
    if sub is not None:
        get_room_manager().unsubscribe(sub)
    return {'ok': True}


def handle_leave_room(data):
    room_id = (data or {}).get('room_id')
    if not room_id:
        return _invalid('room_id is required')
    ctx = _ctx()
    player_id = ctx['players'].pop(room_id, None)
    sub = ctx['subs'].pop(room_id, None)
    manager = get_room_manager()
    if sub is not None:
        manager.unsubscribe(sub)
    if player_id is None:
        return {'ok': True}
    try:
        manager.leave(room_id, player_id)
    except RoomError as exc:
        return _reject(exc)
    emit('left', {'room_id': room_id})
    return {'ok': True}


def handle_submit_guess(data):
    data = data or {}
    room_id = data.get('room_id')
    if not room_id or data.get('round_index') is None:
        return _invalid('room_id and round_index are required')
    player_id = _ctx()['players'].get(room_id)
    if player_id is None:
        return _invalid('join the room before guessing')
    try:
        guess = get_room_manager().submit_guess(room_id, player_id, data['round_index'], str(data.get('text') or ''))
    except RoomError as exc:
        return _reject(exc)
    return {'ok': True, 'guess': guess.to_dict()}


def handle_chat(data):
    data = data or {}
    room_id = data.get('room_id')
    if not room_id:
        return _invalid('room_id is required')
    player_id = _ctx()['players'].get(room_id)
    if player_id is None:
        return _invalid('join the room before chatting')
    try:
        message = get_room_manager().post_chat(room_id, player_id, str(data.get('text') or ''))
    except RoomError as exc:
        return _reject(exc)
    return {'ok': True, 'message': message}


def handle_ping(data):
    emit('pong', data or {})


def register_socketio_handlers(testing: bool = False) -> None:
    """Register Socket.IO event handlers.

    Always register on namespace '/ws'. When testing is True, also mirror
    handlers on the default namespace '/' to accommodate the test harness.
    """
    handlers = [
        ('connect', handle_connect),
        ('disconnect', handle_disconnect),
        ('join_room', handle_join_room),
        ('subscribe', handle_subscribe),
        ('resync', handle_resync),
        ('unsubscribe', handle_unsubscribe),
        ('leave_room', handle_leave_room),
        ('submit_guess', handle_submit_guess),
        ('chat', handle_chat),
        ('ping', handle_ping),
    ]
    namespaces = ['/ws', '/'] if testing else ['/ws']
    for namespace in namespaces:
        for name, handler in handlers:
            socketio.on_event(name, handler, namespace=namespace)
