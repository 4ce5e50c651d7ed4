# Room broadcaster: live-connection multicast over Socket.IO rooms

import logging

logger = logging.getLogger(__name__)

NAMESPACE = '/'


class RoomBroadcaster:
    # Rooms are opaque names; callers follow chat:{id}, session:{id}, user:{id}.
    # Nothing is queued: events for empty rooms or offline users are dropped.

    def __init__(self, socketio, registry, namespace=NAMESPACE):
        self.socketio = socketio
        self.registry = registry
        self.namespace = namespace

    def join(self, sid, room):
        self.socketio.server.enter_room(sid, room, namespace=self.namespace)
        logger.debug("[ROOM JOIN] %s -> %s", sid, room)

    def leave(self, sid, room):
        self.socketio.server.leave_room(sid, room, namespace=self.namespace)
        logger.debug("[ROOM LEAVE] %s <- %s", sid, room)

    def broadcast_to_room(self, room, event, payload, skip_sid=None):
        self.socketio.emit(event, payload, to=room, skip_sid=skip_sid, namespace=self.namespace)

    def broadcast_to_user(self, user_id, event, payload):
        sid = self.registry.sid_for(user_id)
        if sid is None:
            logger.debug("[ROOM EMIT] User %s offline, dropping %s", user_id, event)
            return False
        self.socketio.emit(event, payload, to=sid, namespace=self.namespace)
        return True

    def broadcast_to_all(self, event, payload, skip_sid=None):
        self.socketio.emit(event, payload, skip_sid=skip_sid, namespace=self.namespace)
