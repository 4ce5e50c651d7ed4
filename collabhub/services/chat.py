# Chat messaging coordinator: chats, messages, read receipts, notifications
#
# Every mutation is committed before anything is broadcast, so a failed call
# never reaches other room members.

import logging

from sqlalchemy import and_, exists
from sqlalchemy.exc import IntegrityError

from collabhub.errors import AuthorizationError, NotFoundError, ValidationError
from collabhub.extensions import db
from collabhub.functions import iso, parse_id, room_name, utcnow
from collabhub.models import Chat, ChatParticipant, Message, Notification, ReadReceipt, User
from collabhub.models.chat import DELETED_PLACEHOLDER

logger = logging.getLogger(__name__)


def format_user(user):
    if user is None:
        return None
    return {
        'id': user.id,
        'username': user.username,
        'name': user.name,
        'email': user.email,
        'avatar': user.avatar_url
    }


def format_message(message):
    reply = None
    if message.reply_to is not None:
        reply = {
            'id': message.reply_to.id,
            'content': message.reply_to.content,
            'sender': message.reply_to.sender_id
        }
    return {
        'id': message.id,
        'chat': message.chat_id,
        'sender': format_user(message.sender),
        'content': message.content,
        'type': message.type,
        'attachments': message.attachments or [],
        'replyTo': reply,
        'isEdited': message.is_edited,
        'editedAt': iso(message.edited_at),
        'isDeleted': message.is_deleted,
        'readBy': [{'user': r.user_id, 'readAt': iso(r.read_at)} for r in message.read_by],
        'createdAt': iso(message.created_at),
        'updatedAt': iso(message.updated_at)
    }


def format_chat(chat):
    last = chat.last_message
    return {
        'id': chat.id,
        'type': chat.type,
        'name': chat.name,
        'description': chat.description,
        'participants': [format_user(p.user) for p in chat.participants],
        'createdBy': chat.created_by_id,
        'lastMessage': {
            'id': last.id,
            'content': last.content,
            'sender': format_user(last.sender),
            'createdAt': iso(last.created_at)
        } if last is not None else None,
        'lastMessageAt': iso(chat.last_message_at),
        'isActive': chat.is_active,
        'createdAt': iso(chat.created_at),
        'updatedAt': iso(chat.updated_at)
    }


def format_notification(notification):
    return {
        'id': notification.id,
        'type': notification.type,
        'message': notification.message,
        'sender': format_user(notification.sender),
        'chatId': notification.chat_id,
        'isRead': notification.is_read,
        'createdAt': iso(notification.created_at)
    }


def direct_key(user_ids):
    # Order-independent key of a direct chat pair
    low, high = sorted(user_ids)
    return f"{low}:{high}"


def _unread_by(user_id):
    # Correlated "no receipt from this user" clause for Message queries
    return ~exists().where(and_(ReadReceipt.message_id == Message.id, ReadReceipt.user_id == user_id))


class ChatService:

    def __init__(self, broadcaster, cache):
        self.broadcaster = broadcaster
        self.cache = cache

    # --- Chats ---

    def create_chat(self, requester_id, data):
        participants = [parse_id(p, 'participant id') for p in data.participants]
        # Requester is always a participant; order kept, duplicates dropped
        unique = list(dict.fromkeys(participants + [requester_id]))

        if data.type == 'direct' and len(unique) != 2:
            raise ValidationError('Direct chat must have exactly 2 participants')
        if data.type == 'group' and len(unique) < 2:
            raise ValidationError('Group chat must have at least 2 participants')
        if data.type == 'group' and not (data.name or '').strip():
            raise ValidationError('Group chat requires a name')

        found = User.query.filter(User.id.in_(unique)).count()
        if found != len(unique):
            raise NotFoundError('One or more participants do not exist')

        key = direct_key(unique) if data.type == 'direct' else None
        if key is not None:
            existing = Chat.query.filter_by(direct_key=key).first()
            if existing is not None:
                logger.info("[CHAT] Reusing direct chat %s for pair %s", existing.id, key)
                return format_chat(existing)

        chat = Chat(
            type=data.type,
            name=data.name.strip() if data.type == 'group' else None,
            description=data.description if data.type == 'group' else None,
            created_by_id=requester_id,
            direct_key=key
        )
        for user_id in unique:
            chat.participants.append(ChatParticipant(user_id=user_id))
        db.session.add(chat)
        try:
            db.session.commit()
        except IntegrityError:
            # Another request created the same direct pair first
            db.session.rollback()
            existing = Chat.query.filter_by(direct_key=key).first() if key else None
            if existing is None:
                raise
            return format_chat(existing)

        for user_id in unique:
            self.cache.invalidate_user_chats(user_id)
        logger.info("[CHAT] Created %s chat %s with %s participants", chat.type, chat.id, len(unique))
        return format_chat(chat)

    def get_user_chats(self, user_id, page=1, limit=20):
        page, limit = max(page, 1), max(min(limit, 100), 1)
        key = self.cache.user_chats_key(user_id, page, limit)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        chats = Chat.query.join(ChatParticipant, ChatParticipant.chat_id == Chat.id).filter(
            ChatParticipant.user_id == user_id,
            Chat.is_active.is_(True)
        ).order_by(
            Chat.last_message_at.desc().nulls_last(),
            Chat.updated_at.desc()
        ).offset((page - 1) * limit).limit(limit).all()

        results = []
        for chat in chats:
            item = format_chat(chat)
            item['unreadCount'] = Message.query.filter(
                Message.chat_id == chat.id,
                Message.sender_id != user_id,
                _unread_by(user_id)
            ).count()
            results.append(item)

        self.cache.set(key, results)
        return results

    def get_chat_messages(self, chat_id, user_id, page=1, limit=50):
        chat_id = parse_id(chat_id, 'chat ID')
        self._chat_for_participant(chat_id, user_id)
        page, limit = max(page, 1), max(min(limit, 200), 1)

        key = self.cache.chat_messages_key(chat_id, page, limit)
        cached = self.cache.get(key)
        if cached is not None:
            return cached

        # Newest page first, messages inside the page oldest first
        messages = Message.query.filter_by(chat_id=chat_id, is_deleted=False).order_by(
            Message.id.desc()
        ).offset((page - 1) * limit).limit(limit).all()
        results = [format_message(m) for m in reversed(messages)]

        self.cache.set(key, results)
        return results

    def _chat_for_participant(self, chat_id, user_id):
        chat = db.session.get(Chat, chat_id)
        if chat is None or not chat.is_active:
            raise NotFoundError('Chat not found')
        if user_id not in chat.participant_ids:
            raise AuthorizationError('You are not a participant of this chat')
        return chat

    def ensure_participant(self, chat_id, user_id):
        return self._chat_for_participant(parse_id(chat_id, 'chat ID'), user_id)

    def _invalidate_chat_lists(self, chat):
        # Cached chat lists carry lastMessage and unread counts for every member
        for user_id in chat.participant_ids:
            self.cache.invalidate_user_chats(user_id)

    # --- Messages ---

    def send_message(self, sender_id, data):
        if data.chat_id is None or data.chat_id == '':
            raise ValidationError('Chat ID is required')
        chat_id = parse_id(data.chat_id, 'chat ID')
        content = data.content
        if not content or not content.strip():
            raise ValidationError('Message content is required')

        chat = self._chat_for_participant(chat_id, sender_id)

        if data.reply_to is not None:
            target = db.session.get(Message, data.reply_to)
            if target is None or target.chat_id != chat_id:
                raise ValidationError('Reply target must be a message of the same chat')

        now = utcnow()
        message = Message(
            chat_id=chat_id,
            sender_id=sender_id,
            content=content,
            type=data.type,
            attachments=data.attachments or None,
            reply_to_id=data.reply_to,
            created_at=now,
            updated_at=now
        )
        db.session.add(message)
        db.session.flush()

        chat.last_message = message
        chat.last_message_at = now

        label = 'chat' if chat.type == 'direct' else chat.name
        notifications = []
        for recipient_id in chat.participant_ids:
            if recipient_id == sender_id:
                continue
            notification = Notification(
                recipient_id=recipient_id,
                sender_id=sender_id,
                type='message',
                message=f'New message in {label}',
                chat_id=chat_id
            )
            db.session.add(notification)
            notifications.append(notification)
        db.session.commit()

        self.cache.invalidate_chat_messages(chat_id)
        self._invalidate_chat_lists(chat)

        message_payload = format_message(message)
        room = room_name('chat', chat_id)
        self.broadcaster.broadcast_to_room(room, 'new_message', message_payload)
        self.broadcaster.broadcast_to_room(room, 'chat_updated', format_chat(chat))
        for notification in notifications:
            self.broadcaster.broadcast_to_user(
                notification.recipient_id, 'new_notification', format_notification(notification)
            )

        logger.info("[CHAT] Message %s sent to chat %s by user %s", message.id, chat_id, sender_id)
        return message_payload

    def _own_message(self, message_id, user_id):
        message = db.session.get(Message, parse_id(message_id, 'message ID'))
        if message is None or message.is_deleted:
            raise NotFoundError('Message not found')
        if message.sender_id != user_id:
            raise AuthorizationError('Only the sender can change this message')
        return message

    def update_message(self, message_id, user_id, content):
        message = self._own_message(message_id, user_id)
        if not content or not content.strip():
            raise ValidationError('Message content is required')

        message.content = content
        message.is_edited = True
        message.edited_at = utcnow()
        db.session.commit()

        self.cache.invalidate_chat_messages(message.chat_id)
        self._invalidate_chat_lists(message.chat)
        payload = format_message(message)
        self.broadcaster.broadcast_to_room(room_name('chat', message.chat_id), 'message_updated', payload)
        return payload

    def delete_message(self, message_id, user_id):
        message = self._own_message(message_id, user_id)

        message.is_deleted = True
        message.deleted_at = utcnow()
        message.content = DELETED_PLACEHOLDER
        db.session.commit()

        self.cache.invalidate_chat_messages(message.chat_id)
        self._invalidate_chat_lists(message.chat)
        self.broadcaster.broadcast_to_room(
            room_name('chat', message.chat_id),
            'message_deleted',
            {'messageId': message.id, 'chatId': message.chat_id}
        )
        logger.info("[CHAT] Message %s soft-deleted by user %s", message.id, user_id)

    # --- Read receipts ---

    def mark_messages_as_read(self, chat_id, user_id):
        # Receipt for every message from others this user has not read yet
        chat_id = parse_id(chat_id, 'chat ID')
        self._chat_for_participant(chat_id, user_id)

        for attempt in range(2):
            unread = Message.query.filter(
                Message.chat_id == chat_id,
                Message.sender_id != user_id,
                _unread_by(user_id)
            ).all()
            now = utcnow()
            for message in unread:
                db.session.add(ReadReceipt(message_id=message.id, user_id=user_id, read_at=now))
            try:
                db.session.commit()
                break
            except IntegrityError:
                # A concurrent mark_as_read from the same user won the insert
                db.session.rollback()
                if attempt:
                    raise
        self.cache.invalidate_chat_messages(chat_id)
        self.cache.invalidate_user_chats(user_id)
        return len(unread)

    def get_unread_count(self, user_id):
        chat_ids = db.select(ChatParticipant.chat_id).join(
            Chat, Chat.id == ChatParticipant.chat_id
        ).where(
            ChatParticipant.user_id == user_id,
            Chat.is_active.is_(True)
        )
        return Message.query.filter(
            Message.chat_id.in_(chat_ids),
            Message.sender_id != user_id,
            _unread_by(user_id)
        ).count()

    # --- Notifications ---

    def get_notifications(self, user_id, page=1, limit=20, unread_only=False):
        page, limit = max(page, 1), max(min(limit, 100), 1)
        query = Notification.query.filter_by(recipient_id=user_id)
        if unread_only:
            query = query.filter_by(is_read=False)
        items = query.order_by(Notification.created_at.desc(), Notification.id.desc()).offset(
            (page - 1) * limit
        ).limit(limit).all()
        return [format_notification(n) for n in items]

    def mark_notification_read(self, notification_id, user_id):
        notification = db.session.get(Notification, parse_id(notification_id, 'notification ID'))
        if notification is None or notification.recipient_id != user_id:
            raise NotFoundError('Notification not found')
        notification.is_read = True
        db.session.commit()
        return format_notification(notification)
