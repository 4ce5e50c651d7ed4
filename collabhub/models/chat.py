# Chat-related models: chats, participants, messages, read receipts

from collabhub.extensions import db
from collabhub.functions import utcnow

MESSAGE_TYPES = ('text', 'image', 'file', 'audio', 'video')
DELETED_PLACEHOLDER = 'This message was deleted'


class Chat(db.Model):
    # Direct (exactly two participants) or group conversation
    id = db.Column(db.Integer, primary_key=True)
    type = db.Column(db.String(20), nullable=False, default='direct')  # 'direct', 'group'
    name = db.Column(db.String(150), nullable=True)
    description = db.Column(db.String(500), nullable=True)
    created_by_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    # "<low id>:<high id>" for direct chats, NULL for groups; keeps one chat per pair
    direct_key = db.Column(db.String(64), unique=True, nullable=True)
    last_message_id = db.Column(
        db.Integer,
        db.ForeignKey('message.id', use_alter=True, name='fk_chat_last_message'),
        nullable=True
    )
    last_message_at = db.Column(db.DateTime, nullable=True, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    participants = db.relationship(
        'ChatParticipant', backref='chat', lazy=True, cascade='all, delete-orphan'
    )
    last_message = db.relationship('Message', foreign_keys=[last_message_id], post_update=True)

    @property
    def participant_ids(self):
        return [p.user_id for p in self.participants]


class ChatParticipant(db.Model):
    # Chat membership
    id = db.Column(db.Integer, primary_key=True)
    chat_id = db.Column(db.Integer, db.ForeignKey('chat.id', ondelete='CASCADE'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)

    # Relationships
    user = db.relationship('User')

    __table_args__ = (db.UniqueConstraint('chat_id', 'user_id', name='uq_chat_participant'),)


class Message(db.Model):
    # Chat message; deletion is soft so the row keeps its place in history
    id = db.Column(db.Integer, primary_key=True)
    chat_id = db.Column(db.Integer, db.ForeignKey('chat.id', ondelete='CASCADE'), nullable=False, index=True)
    sender_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    content = db.Column(db.Text, nullable=False)
    type = db.Column(db.String(20), default='text')  # see MESSAGE_TYPES
    attachments = db.Column(db.JSON, nullable=True)
    # Reply target (self-referential FK to another message of the same chat)
    reply_to_id = db.Column(db.Integer, db.ForeignKey('message.id'), nullable=True)
    is_edited = db.Column(db.Boolean, default=False, nullable=False)
    edited_at = db.Column(db.DateTime, nullable=True)
    is_deleted = db.Column(db.Boolean, default=False, nullable=False)
    deleted_at = db.Column(db.DateTime, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime, default=utcnow, onupdate=utcnow)

    # Relationships
    chat = db.relationship('Chat', foreign_keys=[chat_id], backref=db.backref('messages', lazy='dynamic'))
    sender = db.relationship('User')
    reply_to = db.relationship('Message', remote_side=[id])
    read_by = db.relationship(
        'ReadReceipt', backref='message', lazy=True, cascade='all, delete-orphan',
        order_by='ReadReceipt.read_at'
    )


class ReadReceipt(db.Model):
    # One entry per reader per message, append-only
    id = db.Column(db.Integer, primary_key=True)
    message_id = db.Column(db.Integer, db.ForeignKey('message.id', ondelete='CASCADE'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    read_at = db.Column(db.DateTime, default=utcnow)

    __table_args__ = (db.UniqueConstraint('message_id', 'user_id', name='uq_read_receipt'),)
