# Request and socket payload schemas, validated before reaching the coordinators

from typing import Any, List, Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError as PydanticValidationError
from pydantic import field_validator

from collabhub.errors import ValidationError
from collabhub.models.chat import MESSAGE_TYPES
from collabhub.models.code import LANGUAGES, MIN_PARTICIPANTS, MAX_PARTICIPANTS


class Payload(BaseModel):
    # camelCase on the wire, snake_case in Python; unknown keys are ignored
    model_config = ConfigDict(populate_by_name=True, extra='ignore')


class CursorPosition(Payload):
    line: int = Field(ge=0)
    column: int = Field(ge=0)


# --- Socket events ---

class ChatRoomPayload(Payload):
    # join_chat, leave_chat, typing_start, typing_stop
    chat_id: int = Field(alias='chatId', gt=0)


class MarkAsReadPayload(Payload):
    chat_id: int = Field(alias='chatId', gt=0)
    message_id: Optional[int] = Field(default=None, alias='messageId', gt=0)


class SessionRoomPayload(Payload):
    # join_session, leave_session
    session_id: int = Field(alias='sessionId', gt=0)


class CodeChangePayload(Payload):
    session_id: int = Field(alias='sessionId', gt=0)
    code: str
    cursor_position: Optional[CursorPosition] = Field(default=None, alias='cursorPosition')


class CursorMovePayload(Payload):
    session_id: int = Field(alias='sessionId', gt=0)
    cursor_position: CursorPosition = Field(alias='cursorPosition')


class SessionTypingPayload(Payload):
    session_id: int = Field(alias='sessionId', gt=0)
    is_typing: bool = Field(alias='isTyping')


# --- REST bodies ---

class RegisterRequest(Payload):
    username: str
    password: str
    display_name: Optional[str] = Field(default=None, alias='displayName', max_length=150)
    email: Optional[str] = Field(default=None, max_length=255)
    avatar: Optional[str] = Field(default=None, max_length=300)


class LoginRequest(Payload):
    username: str
    password: str


class CreateChatRequest(Payload):
    participants: List[int] = Field(default_factory=list)
    type: str = 'direct'
    name: Optional[str] = Field(default=None, max_length=150)
    description: Optional[str] = Field(default=None, max_length=500)

    @field_validator('type')
    @classmethod
    def _known_type(cls, value):
        if value not in ('direct', 'group'):
            raise ValueError("type must be 'direct' or 'group'")
        return value


class SendMessageRequest(Payload):
    # chat_id and content are checked by the chat coordinator itself
    chat_id: Any = Field(default=None, alias='chatId')
    content: Optional[str] = None
    type: str = 'text'
    attachments: Optional[List[str]] = None
    reply_to: Optional[int] = Field(default=None, alias='replyTo')

    @field_validator('type')
    @classmethod
    def _known_type(cls, value):
        if value not in MESSAGE_TYPES:
            raise ValueError(f"type must be one of {', '.join(MESSAGE_TYPES)}")
        return value


class UpdateMessageRequest(Payload):
    content: str


class CreateSessionRequest(Payload):
    title: str = Field(min_length=1, max_length=100)
    description: Optional[str] = Field(default=None, max_length=500)
    language: str = 'javascript'
    code: str = ''
    max_participants: Optional[int] = Field(
        default=None, alias='maxParticipants', ge=MIN_PARTICIPANTS, le=MAX_PARTICIPANTS
    )
    is_public: bool = Field(default=False, alias='isPublic')
    tags: List[str] = Field(default_factory=list)

    @field_validator('title')
    @classmethod
    def _strip_title(cls, value):
        value = value.strip()
        if not value:
            raise ValueError('title is required')
        return value

    @field_validator('language')
    @classmethod
    def _known_language(cls, value):
        if value not in LANGUAGES:
            raise ValueError(f'unsupported language: {value}')
        return value

    @field_validator('tags')
    @classmethod
    def _short_tags(cls, value):
        tags = [tag.strip() for tag in value if tag and tag.strip()]
        if any(len(tag) > 20 for tag in tags):
            raise ValueError('tags must be at most 20 characters')
        return tags


class UpdateCodeRequest(Payload):
    code: str
    cursor_position: Optional[CursorPosition] = Field(default=None, alias='cursorPosition')


class UpdateCursorRequest(Payload):
    cursor_position: CursorPosition = Field(alias='cursorPosition')


class InviteUserRequest(Payload):
    user_id: int = Field(alias='userId', gt=0)


def parse_payload(schema, data, scalar_key=None):
    # Validate an untrusted payload, turning schema errors into ValidationError.
    # scalar_key lets legacy clients send a bare id instead of an object.
    if scalar_key and data is not None and not isinstance(data, dict):
        data = {scalar_key: data}
    if data is None:
        data = {}
    if not isinstance(data, dict):
        raise ValidationError('Payload must be an object')
    try:
        return schema.model_validate(data)
    except PydanticValidationError as e:
        first = e.errors()[0]
        location = '.'.join(str(part) for part in first.get('loc', ())) or 'payload'
        raise ValidationError(f"Invalid {location}: {first.get('msg', 'invalid value')}")
