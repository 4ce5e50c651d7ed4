# Per-application service container, stored in app.extensions['collabhub']

from dataclasses import dataclass

from flask import current_app

from collabhub.realtime import ConnectionRegistry, PresenceCoordinator, RoomBroadcaster
from .auth import IdentityResolver, TokenCodec
from .cache import ChatCache
from .chat import ChatService
from .code_sessions import CodeSessionService

EXTENSION_KEY = 'collabhub'


@dataclass
class Services:
    registry: ConnectionRegistry
    broadcaster: RoomBroadcaster
    presence: PresenceCoordinator
    resolver: IdentityResolver
    cache: ChatCache
    chats: ChatService
    code_sessions: CodeSessionService


def init_services(flask_app, socketio):
    cfg = flask_app.config
    registry = ConnectionRegistry()
    broadcaster = RoomBroadcaster(socketio, registry)
    cache = ChatCache.from_url(cfg['REDIS_URL'], ttl=cfg['CACHE_TTL'])
    services = Services(
        registry=registry,
        broadcaster=broadcaster,
        presence=PresenceCoordinator(registry, broadcaster),
        resolver=IdentityResolver(
            cfg['JWT_SECRET'], TokenCodec(cfg['ENCRYPTION_KEY']), cfg['JWT_EXPIRES_SECONDS']
        ),
        cache=cache,
        chats=ChatService(broadcaster, cache),
        code_sessions=CodeSessionService(
            broadcaster,
            default_max_participants=cfg['DEFAULT_MAX_PARTICIPANTS'],
            max_attempts=cfg['MAX_WRITE_ATTEMPTS'],
            client_url=cfg['CLIENT_URL']
        )
    )
    flask_app.extensions[EXTENSION_KEY] = services
    return services


def get_services():
    return current_app.extensions[EXTENSION_KEY]
