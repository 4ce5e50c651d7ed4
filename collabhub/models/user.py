# User-related models

from flask_login import UserMixin
from collabhub.extensions import db
from collabhub.functions import utcnow


class User(UserMixin, db.Model):
    # Account that can connect, chat and join code sessions
    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(150), unique=True, nullable=False)
    password = db.Column(db.String(255), nullable=False)

    # Profile info
    display_name = db.Column(db.String(150))
    email = db.Column(db.String(255), unique=True, nullable=True)
    avatar_url = db.Column(db.String(300))
    created_at = db.Column(db.DateTime, default=utcnow)

    @property
    def name(self):
        return self.display_name or self.username


class Notification(db.Model):
    # Persisted notification created for chat participants
    id = db.Column(db.Integer, primary_key=True)
    recipient_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    sender_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    type = db.Column(db.String(30), nullable=False, default='message')  # 'message'
    message = db.Column(db.String(300), nullable=False)
    is_read = db.Column(db.Boolean, default=False, nullable=False)
    chat_id = db.Column(db.Integer, db.ForeignKey('chat.id', ondelete='CASCADE'), nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)

    # Relationships
    sender = db.relationship('User', foreign_keys=[sender_id])
