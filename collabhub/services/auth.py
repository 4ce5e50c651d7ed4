# Identity resolution: bearer credential -> verified user identity
#
# Tokens are HS256 JWTs carrying the user id in an `id` claim. When an
# encryption key is configured the JWT is additionally wrapped with
# AES-256-CBC as "<iv hex>:<ciphertext hex>". Unwrapping is best effort so
# raw JWTs issued before wrapping was enabled keep working.

import logging
import os
import re
from datetime import datetime, timedelta, timezone

import jwt
from cryptography.hazmat.primitives import padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes

from collabhub.errors import AuthenticationError
from collabhub.extensions import db
from collabhub.models import User
from collabhub.realtime.registry import Identity

logger = logging.getLogger(__name__)

JWT_ALGORITHM = 'HS256'
IV_LENGTH = 16
_HEX_RE = re.compile(r'^[0-9a-fA-F]+$')


def normalize_key(key):
    # AES-256 needs exactly 64 hex characters: pad short keys, cut long ones
    if not key:
        return None
    key = key.ljust(64, '0')[:64]
    if not _HEX_RE.match(key):
        raise ValueError('ENCRYPTION_KEY must be a valid hex string')
    return bytes.fromhex(key)


class TokenCodec:
    # AES-256-CBC wrapping of already signed tokens

    def __init__(self, key):
        self.key = normalize_key(key)

    @property
    def enabled(self):
        return self.key is not None

    def wrap(self, text):
        if not self.enabled:
            return text
        iv = os.urandom(IV_LENGTH)
        padder = padding.PKCS7(algorithms.AES.block_size).padder()
        padded = padder.update(text.encode('utf-8')) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self.key), modes.CBC(iv)).encryptor()
        encrypted = encryptor.update(padded) + encryptor.finalize()
        return iv.hex() + ':' + encrypted.hex()

    def unwrap(self, text):
        # Raises ValueError for anything that is not a token wrapped with our key
        if not self.enabled:
            raise ValueError('Token wrapping is disabled')
        parts = text.split(':')
        if len(parts) != 2:
            raise ValueError('Invalid encrypted text format')
        iv = bytes.fromhex(parts[0])
        encrypted = bytes.fromhex(parts[1])
        decryptor = Cipher(algorithms.AES(self.key), modes.CBC(iv)).decryptor()
        padded = decryptor.update(encrypted) + decryptor.finalize()
        unpadder = padding.PKCS7(algorithms.AES.block_size).unpadder()
        return (unpadder.update(padded) + unpadder.finalize()).decode('utf-8')


class IdentityResolver:

    def __init__(self, jwt_secret, codec, expires_seconds=24 * 60 * 60):
        self.jwt_secret = jwt_secret
        self.codec = codec
        self.expires_seconds = expires_seconds

    def issue_token(self, user_id, expires_in=None):
        expires_in = self.expires_seconds if expires_in is None else expires_in
        now = datetime.now(timezone.utc)
        claims = {'id': user_id, 'iat': now, 'exp': now + timedelta(seconds=expires_in)}
        token = jwt.encode(claims, self.jwt_secret, algorithm=JWT_ALGORITHM)
        return self.codec.wrap(token)

    @staticmethod
    def extract_credential(auth=None, headers=None):
        # Handshake auth payload first, then the Authorization header
        token = None
        if isinstance(auth, dict):
            token = auth.get('token')
        if not token and headers is not None:
            header = headers.get('Authorization') or ''
            if header.startswith('Bearer '):
                token = header[len('Bearer '):].strip()
        return token or None

    def resolve(self, credential):
        # Verify a credential and load its user; returns (Identity, User)
        if not credential:
            raise AuthenticationError(
                'Authentication error: No token provided', AuthenticationError.MISSING
            )

        token = credential
        try:
            token = self.codec.unwrap(credential)
        except ValueError:
            # Not wrapped (or wrapped with another key): treat as a raw JWT
            token = credential

        try:
            claims = jwt.decode(token, self.jwt_secret, algorithms=[JWT_ALGORITHM])
        except jwt.ExpiredSignatureError:
            raise AuthenticationError('Authentication error: Token expired', AuthenticationError.EXPIRED)
        except jwt.InvalidTokenError as e:
            logger.info("[AUTH] Token rejected: %s", type(e).__name__)
            raise AuthenticationError('Authentication error: Invalid token', AuthenticationError.INVALID)

        try:
            user_id = int(claims.get('id'))
        except (TypeError, ValueError):
            raise AuthenticationError('Authentication error: Invalid token', AuthenticationError.INVALID)

        user = db.session.get(User, user_id)
        if user is None:
            raise AuthenticationError(
                'Authentication error: User not found', AuthenticationError.USER_NOT_FOUND
            )
        return Identity.from_user(user), user
