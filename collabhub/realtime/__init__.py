from .registry import ConnectionEntry, ConnectionRegistry, Identity
from .broadcaster import RoomBroadcaster
from .presence import PresenceCoordinator
