# Socket.IO event handlers
#
# Handlers validate the payload, hand the work to a coordinator and return an
# acknowledgement. Failures are returned to the calling socket only.

import logging

from flask import request
from flask_socketio import ConnectionRefusedError

from collabhub.errors import AuthenticationError, CollabError
from collabhub.extensions import db, socketio
from collabhub.functions import room_name, utcnow
from collabhub.schemas import (
    ChatRoomPayload, CodeChangePayload, CursorMovePayload, MarkAsReadPayload,
    SessionRoomPayload, SessionTypingPayload, parse_payload
)
from collabhub.services import get_services

logger = logging.getLogger(__name__)


def _identity():
    # Identity attached to this socket by the handshake
    registry = get_services().registry
    identity = registry.identity_for(request.sid)
    if identity is None:
        raise AuthenticationError('Authentication error: Not connected', AuthenticationError.MISSING)
    registry.touch(request.sid)
    return identity


def _ok(**data):
    data['success'] = True
    return data


# --- Connection lifecycle ---

@socketio.on('connect')
def on_connect(auth=None):
    # Verify the credential before the socket is accepted
    services = get_services()
    credential = services.resolver.extract_credential(auth, request.headers)
    try:
        identity, _ = services.resolver.resolve(credential)
    except AuthenticationError as e:
        logger.info("[SOCKET CONNECT] Rejected %s: %s", request.sid, e.reason)
        raise ConnectionRefusedError(e.message, {'reason': e.reason})

    services.presence.connect(request.sid, identity)
    socketio.emit('connected', {
        'message': 'Successfully connected to server',
        'userId': identity.id,
        'user': identity.to_dict()
    }, to=request.sid)
    logger.info("[SOCKET CONNECT] User %s connected", identity.id)


@socketio.on('disconnect')
def on_disconnect(*args):
    # Newer python-socketio passes the disconnect reason
    get_services().presence.disconnect(request.sid)


# --- Chat rooms ---

@socketio.on('join_chat')
def on_join_chat(data):
    identity = _identity()
    payload = parse_payload(ChatRoomPayload, data, scalar_key='chatId')
    services = get_services()
    services.chats.ensure_participant(payload.chat_id, identity.id)
    services.broadcaster.join(request.sid, room_name('chat', payload.chat_id))
    logger.debug("[SOCKET JOIN] User %s joined chat %s", identity.id, payload.chat_id)
    return _ok(chatId=payload.chat_id)


@socketio.on('leave_chat')
def on_leave_chat(data):
    _identity()
    payload = parse_payload(ChatRoomPayload, data, scalar_key='chatId')
    get_services().broadcaster.leave(request.sid, room_name('chat', payload.chat_id))
    return _ok(chatId=payload.chat_id)


@socketio.on('typing_start')
def on_typing_start(data):
    identity = _identity()
    payload = parse_payload(ChatRoomPayload, data, scalar_key='chatId')
    get_services().presence.typing(request.sid, identity, payload.chat_id, True)
    return _ok()


@socketio.on('typing_stop')
def on_typing_stop(data):
    identity = _identity()
    payload = parse_payload(ChatRoomPayload, data, scalar_key='chatId')
    get_services().presence.typing(request.sid, identity, payload.chat_id, False)
    return _ok()


@socketio.on('mark_as_read')
def on_mark_as_read(data):
    identity = _identity()
    payload = parse_payload(MarkAsReadPayload, data)
    services = get_services()
    marked = services.chats.mark_messages_as_read(payload.chat_id, identity.id)
    services.presence.read(request.sid, identity, payload.chat_id, payload.message_id, utcnow())
    return _ok(chatId=payload.chat_id, marked=marked)


# --- Code sessions ---

@socketio.on('join_session')
def on_join_session(data):
    identity = _identity()
    payload = parse_payload(SessionRoomPayload, data, scalar_key='sessionId')
    services = get_services()
    session = services.code_sessions.join_session(payload.session_id, identity.id, origin_sid=request.sid)
    services.broadcaster.join(request.sid, room_name('session', payload.session_id))
    return _ok(session=session)


@socketio.on('leave_session')
def on_leave_session(data):
    identity = _identity()
    payload = parse_payload(SessionRoomPayload, data, scalar_key='sessionId')
    services = get_services()
    services.code_sessions.leave_session(payload.session_id, identity.id, origin_sid=request.sid)
    services.broadcaster.leave(request.sid, room_name('session', payload.session_id))
    return _ok(sessionId=payload.session_id)


@socketio.on('code_change')
def on_code_change(data):
    identity = _identity()
    payload = parse_payload(CodeChangePayload, data)
    cursor = payload.cursor_position.model_dump() if payload.cursor_position else None
    result = get_services().code_sessions.update_code(
        payload.session_id, identity.id, payload.code, cursor, origin_sid=request.sid
    )
    return _ok(sessionId=payload.session_id, version=result['version'])


@socketio.on('cursor_move')
def on_cursor_move(data):
    identity = _identity()
    payload = parse_payload(CursorMovePayload, data)
    get_services().code_sessions.update_cursor(
        payload.session_id, identity.id, payload.cursor_position.model_dump(), origin_sid=request.sid
    )
    return _ok(sessionId=payload.session_id)


@socketio.on('user_typing_session')
def on_user_typing_session(data):
    identity = _identity()
    payload = parse_payload(SessionTypingPayload, data)
    get_services().presence.session_typing(request.sid, identity, payload.session_id, payload.is_typing)
    return _ok()


# --- Errors ---

@socketio.on_error_default
def on_socket_error(e):
    # Becomes the acknowledgement of the failed event; nothing is broadcast
    if isinstance(e, ConnectionRefusedError):
        raise e
    db.session.rollback()
    if isinstance(e, CollabError):
        logger.info("[SOCKET ERROR] %s on %s: %s", e.code, request.event.get('message'), e.message)
        return e.to_dict()
    logger.exception("[SOCKET ERROR] Unhandled error on %s", request.event.get('message'))
    return {'success': False, 'error': 'Internal server error', 'code': 'internal_error'}
