# Connection registry: which users hold a live socket in this process

import threading
from dataclasses import dataclass

from collabhub.functions import iso, utcnow


@dataclass(frozen=True)
class Identity:
    # Verified identity attached to a connection by the handshake
    id: int
    display_name: str
    email: str = None
    avatar: str = None

    @classmethod
    def from_user(cls, user):
        return cls(id=user.id, display_name=user.name, email=user.email, avatar=user.avatar_url)

    def to_dict(self):
        return {
            'id': self.id,
            'displayName': self.display_name,
            'email': self.email,
            'avatar': self.avatar
        }


@dataclass
class ConnectionEntry:
    user_id: int
    sid: str
    is_online: bool = True
    last_seen: object = None

    def to_dict(self):
        return {
            'userId': self.user_id,
            'isOnline': self.is_online,
            'lastSeen': iso(self.last_seen)
        }


class ConnectionRegistry:
    # One presence slot per user (the most recent socket wins), plus the
    # identity of every live socket so an overwritten socket can still act.

    def __init__(self):
        self._lock = threading.RLock()
        self._entries = {}
        self._identities = {}

    def register(self, sid, identity):
        entry = ConnectionEntry(user_id=identity.id, sid=sid, is_online=True, last_seen=utcnow())
        with self._lock:
            self._identities[sid] = identity
            self._entries[identity.id] = entry
        return entry

    def unregister(self, sid):
        # Forget a socket; returns the presence entry only if this socket held it
        with self._lock:
            identity = self._identities.pop(sid, None)
            if identity is None:
                return None
            entry = self._entries.get(identity.id)
            if entry is None or entry.sid != sid:
                return None
            del self._entries[identity.id]
        entry.is_online = False
        entry.last_seen = utcnow()
        return entry

    def touch(self, sid):
        with self._lock:
            identity = self._identities.get(sid)
            entry = self._entries.get(identity.id) if identity else None
            if entry is not None and entry.sid == sid:
                entry.last_seen = utcnow()

    def identity_for(self, sid):
        with self._lock:
            return self._identities.get(sid)

    def sid_for(self, user_id):
        with self._lock:
            entry = self._entries.get(user_id)
            return entry.sid if entry else None

    def is_user_online(self, user_id):
        with self._lock:
            return user_id in self._entries

    def get_online_users(self):
        with self._lock:
            return list(self._entries.values())

    def connected_count(self):
        with self._lock:
            return len(self._entries)

    def clear(self):
        with self._lock:
            self._entries.clear()
            self._identities.clear()
