# Configuration file for CollabHub

import json
import os

# Values are resolved in this order: COLLABHUB_<KEY> environment variable,
# then `config.json` located next to this file, then the defaults below.
_BASE_DIR = os.path.dirname(os.path.abspath(__file__))
_JSON_PATH = os.path.join(_BASE_DIR, 'config.json')
_ENV_PREFIX = 'COLLABHUB_'

# Defaults
_defaults = {
    'SQLALCHEMY_DATABASE_URI': 'sqlite:///collabhub.db',
    'SQLALCHEMY_TRACK_MODIFICATIONS': False,
    'SECRET_KEY': 'change_me_secret_key',
    'JWT_SECRET': 'change_me_jwt_secret',
    'JWT_EXPIRES_SECONDS': 24 * 60 * 60,
    # 64 hex characters (AES-256). Empty means tokens are issued unwrapped.
    'ENCRYPTION_KEY': '',
    # Empty disables the chat cache
    'REDIS_URL': '',
    'CACHE_TTL': 300,
    'CLIENT_URL': 'http://localhost:5173',
    'CORS_ALLOWED_ORIGINS': '*',
    'SOCKETIO_ASYNC_MODE': 'eventlet',
    'DEFAULT_MAX_PARTICIPANTS': 10,
    'MAX_WRITE_ATTEMPTS': 3,
    'LOG_LEVEL': 'INFO',
}

_cfg = {}
try:
    with open(_JSON_PATH, 'r', encoding='utf-8') as f:
        _cfg = json.load(f) or {}
except FileNotFoundError:
    # No config.json present, defaults apply
    _cfg = {}
except ValueError:
    # Unparseable config.json, defaults apply
    _cfg = {}


def _coerce(raw, default):
    # Environment values are strings; convert them to the type of the default
    if isinstance(default, bool):
        return raw.strip().lower() in ('1', 'true', 'yes', 'on')
    if isinstance(default, int):
        return int(raw)
    return raw


def _get(key):
    default = _defaults.get(key)
    env_value = os.environ.get(_ENV_PREFIX + key)
    if env_value is not None:
        return _coerce(env_value, default)
    return _cfg.get(key, default)


# Database
SQLALCHEMY_DATABASE_URI = _get('SQLALCHEMY_DATABASE_URI')
SQLALCHEMY_TRACK_MODIFICATIONS = _get('SQLALCHEMY_TRACK_MODIFICATIONS')

# Security
SECRET_KEY = _get('SECRET_KEY')
JWT_SECRET = _get('JWT_SECRET')
JWT_EXPIRES_SECONDS = int(_get('JWT_EXPIRES_SECONDS'))
ENCRYPTION_KEY = _get('ENCRYPTION_KEY')

# Cache
REDIS_URL = _get('REDIS_URL')
CACHE_TTL = int(_get('CACHE_TTL'))

# Realtime transport
CLIENT_URL = _get('CLIENT_URL')
CORS_ALLOWED_ORIGINS = _get('CORS_ALLOWED_ORIGINS')
SOCKETIO_ASYNC_MODE = _get('SOCKETIO_ASYNC_MODE')

# Code sessions
DEFAULT_MAX_PARTICIPANTS = int(_get('DEFAULT_MAX_PARTICIPANTS'))
MAX_WRITE_ATTEMPTS = int(_get('MAX_WRITE_ATTEMPTS'))

# Logging
LOG_LEVEL = _get('LOG_LEVEL')


def as_dict():
    # Flask config mapping built from the resolved module values
    return {key: globals()[key] for key in _defaults}
