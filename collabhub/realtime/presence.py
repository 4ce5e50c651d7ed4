# Presence and typing: online/offline announcements and ephemeral relays

import logging

from collabhub.functions import iso, room_name

logger = logging.getLogger(__name__)


class PresenceCoordinator:

    def __init__(self, registry, broadcaster):
        self.registry = registry
        self.broadcaster = broadcaster

    def connect(self, sid, identity):
        # Register the socket, give it its personal room and tell everyone else
        entry = self.registry.register(sid, identity)
        self.broadcaster.join(sid, room_name('user', identity.id))
        self.broadcaster.broadcast_to_all('user_online', entry.to_dict(), skip_sid=sid)
        logger.info("[PRESENCE] User %s online (sid=%s)", identity.id, sid)
        return entry

    def disconnect(self, sid):
        # Offline is announced only when the socket still held the user's slot
        entry = self.registry.unregister(sid)
        if entry is None:
            logger.debug("[PRESENCE] Superseded socket %s closed", sid)
            return None
        self.broadcaster.broadcast_to_all('user_offline', entry.to_dict())
        logger.info("[PRESENCE] User %s offline", entry.user_id)
        return entry

    def typing(self, sid, identity, chat_id, is_typing):
        self.broadcaster.broadcast_to_room(room_name('chat', chat_id), 'user_typing', {
            'userId': identity.id,
            'userName': identity.display_name,
            'chatId': chat_id,
            'isTyping': is_typing
        }, skip_sid=sid)

    def session_typing(self, sid, identity, session_id, is_typing):
        self.broadcaster.broadcast_to_room(room_name('session', session_id), 'user_typing_session', {
            'sessionId': session_id,
            'userId': identity.id,
            'isTyping': is_typing
        }, skip_sid=sid)

    def read(self, sid, identity, chat_id, message_id, read_at):
        self.broadcaster.broadcast_to_room(room_name('chat', chat_id), 'message_read', {
            'userId': identity.id,
            'messageId': message_id,
            'chatId': chat_id,
            'readAt': iso(read_at)
        }, skip_sid=sid)
