# Functions package

from collabhub.functions.helpers import (
    utcnow, iso, parse_id, generate_invite_code, room_name
)
from collabhub.functions.logs import setup_logging

__all__ = [
    'utcnow', 'iso', 'parse_id', 'generate_invite_code', 'room_name',
    'setup_logging'
]
