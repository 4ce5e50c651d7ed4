# Small helpers shared by services, routes and socket handlers

import secrets
import string
from datetime import datetime, timezone

from collabhub.errors import ValidationError

INVITE_CODE_ALPHABET = string.ascii_uppercase + string.ascii_lowercase + string.digits
INVITE_CODE_LENGTH = 8


def utcnow():
    # Naive UTC timestamp, the form stored by the database columns
    return datetime.now(timezone.utc).replace(tzinfo=None)


def iso(value):
    # Serialize a stored timestamp for the wire
    if value is None:
        return None
    return value.strftime('%Y-%m-%dT%H:%M:%SZ')


def parse_id(value, label='id'):
    # Normalize a client supplied id to int, rejecting anything malformed
    if value is None or value == '':
        raise ValidationError(f'{label} is required')
    if isinstance(value, bool):
        raise ValidationError(f'Invalid {label} format')
    if isinstance(value, float) and not value.is_integer():
        raise ValidationError(f'Invalid {label} format')
    try:
        parsed = int(value)
    except (TypeError, ValueError):
        raise ValidationError(f'Invalid {label} format')
    if parsed <= 0:
        raise ValidationError(f'Invalid {label} format')
    return parsed


def generate_invite_code(length=INVITE_CODE_LENGTH):
    return ''.join(secrets.choice(INVITE_CODE_ALPHABET) for _ in range(length))


def room_name(kind, entity_id):
    # Room naming convention: chat:{id}, session:{id}, user:{id}
    return f"{kind}:{entity_id}"
