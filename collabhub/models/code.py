# Collaborative code session models

from collabhub.extensions import db
from collabhub.functions import utcnow

LANGUAGES = (
    'javascript', 'typescript', 'python', 'java', 'cpp', 'csharp', 'go', 'rust',
    'php', 'ruby', 'swift', 'kotlin', 'html', 'css', 'sql', 'json', 'xml',
    'yaml', 'markdown'
)
MIN_PARTICIPANTS = 2
MAX_PARTICIPANTS = 50


class CodeSession(db.Model):
    # Shared code buffer edited by its participants, last write wins
    id = db.Column(db.Integer, primary_key=True)
    title = db.Column(db.String(100), nullable=False)
    description = db.Column(db.String(500), nullable=True)
    language = db.Column(db.String(20), nullable=False, default='javascript', index=True)
    code = db.Column(db.Text, nullable=False, default='')
    owner_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    ended_at = db.Column(db.DateTime, nullable=True)
    max_participants = db.Column(db.Integer, nullable=False, default=10)
    is_public = db.Column(db.Boolean, default=False, nullable=False)
    invite_code = db.Column(db.String(16), unique=True, nullable=True)
    tags = db.Column(db.JSON, nullable=True)
    created_at = db.Column(db.DateTime, default=utcnow, index=True)
    updated_at = db.Column(db.DateTime, default=utcnow)
    # Bumped by every UPDATE; writes are conditional on the version that was read
    version = db.Column(db.Integer, nullable=False)

    # Relationships
    owner = db.relationship('User')
    participants = db.relationship(
        'SessionParticipant', backref='session', lazy=True,
        cascade='all, delete-orphan', order_by='SessionParticipant.joined_at'
    )
    invites = db.relationship(
        'SessionInvite', backref='session', lazy=True, cascade='all, delete-orphan'
    )

    __mapper_args__ = {'version_id_col': version}

    @property
    def invited_user_ids(self):
        return [invite.user_id for invite in self.invites]

    def find_participant(self, user_id):
        for participant in self.participants:
            if participant.user_id == user_id:
                return participant
        return None

    def can_user_join(self, user_id):
        # Public sessions, the owner and explicitly invited users may join
        if self.is_public:
            return True
        if self.owner_id == user_id:
            return True
        return user_id in self.invited_user_ids


class SessionParticipant(db.Model):
    # Participant entry with presence and cursor data
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('code_session.id', ondelete='CASCADE'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False, index=True)
    joined_at = db.Column(db.DateTime, default=utcnow)
    last_active = db.Column(db.DateTime, default=utcnow)
    cursor_line = db.Column(db.Integer, nullable=True)
    cursor_column = db.Column(db.Integer, nullable=True)

    # Relationships
    user = db.relationship('User')

    __table_args__ = (db.UniqueConstraint('session_id', 'user_id', name='uq_session_participant'),)

    @property
    def cursor_position(self):
        if self.cursor_line is None:
            return None
        return {'line': self.cursor_line, 'column': self.cursor_column or 0}

    @cursor_position.setter
    def cursor_position(self, value):
        self.cursor_line = value['line'] if value else None
        self.cursor_column = value['column'] if value else None


class SessionInvite(db.Model):
    # Allow-list entry for private sessions
    id = db.Column(db.Integer, primary_key=True)
    session_id = db.Column(db.Integer, db.ForeignKey('code_session.id', ondelete='CASCADE'), nullable=False)
    user_id = db.Column(db.Integer, db.ForeignKey('user.id'), nullable=False)
    created_at = db.Column(db.DateTime, default=utcnow)

    __table_args__ = (db.UniqueConstraint('session_id', 'user_id', name='uq_session_invite'),)
