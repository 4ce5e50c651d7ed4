# Code-session coordinator: session lifecycle, membership and the shared buffer
#
# Session rows carry a version column. Writes go through _write(), which
# re-reads the session, re-checks every precondition and commits conditionally
# on the version it read, retrying when a concurrent writer got there first.
# Capacity checks therefore hold under concurrent joins.

import logging
import math

from sqlalchemy import func, or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm.exc import StaleDataError

from collabhub.errors import (
    AuthorizationError, CapacityError, CollabError, ConcurrencyError, NotFoundError, ValidationError
)
from collabhub.extensions import db
from collabhub.functions import generate_invite_code, iso, parse_id, room_name, utcnow
from collabhub.models import CodeSession, SessionInvite, SessionParticipant, User
from collabhub.services.chat import format_user

logger = logging.getLogger(__name__)

TOP_LANGUAGES = 10


def format_participant(participant):
    return {
        'user': format_user(participant.user),
        'joinedAt': iso(participant.joined_at),
        'lastActive': iso(participant.last_active),
        'cursorPosition': participant.cursor_position
    }


def format_session(session):
    return {
        'id': session.id,
        'title': session.title,
        'description': session.description,
        'language': session.language,
        'code': session.code,
        'owner': format_user(session.owner),
        'participants': [format_participant(p) for p in session.participants],
        'participantCount': len(session.participants),
        'maxParticipants': session.max_participants,
        'isActive': session.is_active,
        'isPublic': session.is_public,
        'inviteCode': session.invite_code,
        'invitedUsers': session.invited_user_ids,
        'tags': session.tags or [],
        'version': session.version,
        'createdAt': iso(session.created_at),
        'updatedAt': iso(session.updated_at),
        'endedAt': iso(session.ended_at)
    }


def _touch(session):
    # Any change to the session row bumps its version
    session.updated_at = utcnow()


class CodeSessionService:

    def __init__(self, broadcaster, default_max_participants=10, max_attempts=3, client_url=''):
        self.broadcaster = broadcaster
        self.default_max_participants = default_max_participants
        self.max_attempts = max_attempts
        self.client_url = (client_url or '').rstrip('/')

    # --- Internals ---

    def _load(self, session_id, require_active=True):
        session = db.session.get(CodeSession, parse_id(session_id, 'session ID'))
        if session is None or (require_active and not session.is_active):
            raise NotFoundError('Session not found or has ended')
        return session

    def _write(self, session_id, mutate, require_active=True):
        # Run mutate(session) on a fresh read and commit; returns (session, result)
        for attempt in range(1, self.max_attempts + 1):
            try:
                session = self._load(session_id, require_active)
                result = mutate(session)
                db.session.commit()
                return session, result
            except CollabError:
                db.session.rollback()
                raise
            except (StaleDataError, IntegrityError) as e:
                db.session.rollback()
                logger.warning(
                    "[CODE SESSION] Write conflict on session %s (attempt %s/%s): %s",
                    session_id, attempt, self.max_attempts, type(e).__name__
                )
        raise ConcurrencyError('Session was modified concurrently, please retry')

    def _room(self, session):
        return room_name('session', session.id)

    # --- Lifecycle ---

    def create_session(self, owner_id, data):
        now = utcnow()
        session = CodeSession(
            title=data.title,
            description=data.description,
            language=data.language,
            code=data.code or '',
            owner_id=owner_id,
            max_participants=data.max_participants or self.default_max_participants,
            is_public=data.is_public,
            tags=data.tags,
            created_at=now,
            updated_at=now
        )
        session.participants.append(SessionParticipant(user_id=owner_id, joined_at=now, last_active=now))
        db.session.add(session)
        db.session.commit()
        logger.info("[CODE SESSION] Session %s created by user %s", session.id, owner_id)
        return format_session(session)

    def get_session(self, session_id, user_id):
        session = self._load(session_id)
        if session.find_participant(user_id) is None and not session.can_user_join(user_id):
            raise AuthorizationError('You do not have access to this session')
        return format_session(session)

    def get_user_sessions(self, user_id, page=1, limit=10):
        page, limit = max(page, 1), max(min(limit, 100), 1)
        joined = db.select(SessionParticipant.session_id).where(SessionParticipant.user_id == user_id)
        invited = db.select(SessionInvite.session_id).where(SessionInvite.user_id == user_id)
        query = CodeSession.query.filter(
            CodeSession.is_active.is_(True),
            or_(
                CodeSession.owner_id == user_id,
                CodeSession.id.in_(joined),
                CodeSession.id.in_(invited),
                CodeSession.is_public.is_(True)
            )
        )
        return self._page(query, page, limit)

    def get_public_sessions(self, page=1, limit=10, language=None):
        page, limit = max(page, 1), max(min(limit, 100), 1)
        query = CodeSession.query.filter(CodeSession.is_active.is_(True), CodeSession.is_public.is_(True))
        if language:
            query = query.filter(CodeSession.language == language)
        return self._page(query, page, limit)

    def _page(self, query, page, limit):
        total = query.count()
        sessions = query.order_by(CodeSession.updated_at.desc(), CodeSession.id.desc()).offset(
            (page - 1) * limit
        ).limit(limit).all()
        return {
            'sessions': [format_session(s) for s in sessions],
            'total': total,
            'page': page,
            'pages': math.ceil(total / limit) if total else 0
        }

    def end_session(self, session_id, user_id):
        def mutate(session):
            if session.owner_id != user_id:
                raise AuthorizationError('Only the session owner can end the session')
            if not session.is_active:
                raise ValidationError('Session has already ended')
            session.is_active = False
            session.ended_at = utcnow()
            _touch(session)

        session, _ = self._write(session_id, mutate, require_active=False)
        self.broadcaster.broadcast_to_room(self._room(session), 'session_ended', {
            'sessionId': session.id,
            'reason': 'ended',
            'endedBy': user_id
        })
        logger.info("[CODE SESSION] Session %s ended by owner %s", session.id, user_id)
        return format_session(session)

    def delete_session(self, session_id, user_id):
        def mutate(session):
            if session.owner_id != user_id:
                raise AuthorizationError('Only the session owner can delete the session')
            deleted_id = session.id
            db.session.delete(session)
            return deleted_id

        _, deleted_id = self._write(session_id, mutate, require_active=False)
        self.broadcaster.broadcast_to_room(room_name('session', deleted_id), 'session_ended', {
            'sessionId': deleted_id,
            'reason': 'deleted',
            'endedBy': user_id
        })
        logger.info("[CODE SESSION] Session %s deleted by owner %s", deleted_id, user_id)
        return deleted_id

    # --- Membership ---

    def _admit(self, session, user_id):
        # Add user_id as a participant, or refresh an existing one; True when added
        now = utcnow()
        participant = session.find_participant(user_id)
        if participant is not None:
            participant.last_active = now
            return False
        if len(session.participants) >= session.max_participants:
            raise CapacityError('Session is full')
        session.participants.append(SessionParticipant(user_id=user_id, joined_at=now, last_active=now))
        _touch(session)
        return True

    def _announce_join(self, session, user_id, origin_sid=None):
        user = db.session.get(User, user_id)
        self.broadcaster.broadcast_to_room(self._room(session), 'user_joined_session', {
            'sessionId': session.id,
            'user': format_user(user),
            'participantCount': len(session.participants)
        }, skip_sid=origin_sid)

    def join_session(self, session_id, user_id, origin_sid=None):
        def mutate(session):
            if session.find_participant(user_id) is None and not session.can_user_join(user_id):
                raise AuthorizationError('You are not allowed to join this session')
            return self._admit(session, user_id)

        session, joined = self._write(session_id, mutate)
        if joined:
            self._announce_join(session, user_id, origin_sid)
            logger.info("[CODE SESSION] User %s joined session %s", user_id, session.id)
        return format_session(session)

    def leave_session(self, session_id, user_id, origin_sid=None):
        def mutate(session):
            participant = session.find_participant(user_id)
            if participant is None:
                raise NotFoundError('You are not a participant of this session')
            session.participants.remove(participant)
            _touch(session)

        session, _ = self._write(session_id, mutate)
        self.broadcaster.broadcast_to_room(self._room(session), 'user_left_session', {
            'sessionId': session.id,
            'userId': user_id,
            'participantCount': len(session.participants)
        }, skip_sid=origin_sid)
        logger.info("[CODE SESSION] User %s left session %s", user_id, session.id)
        return True

    def invite_user(self, session_id, owner_id, invited_user_id):
        invited_user_id = parse_id(invited_user_id, 'user ID')
        if db.session.get(User, invited_user_id) is None:
            raise NotFoundError('User not found')

        def mutate(session):
            if session.owner_id != owner_id:
                raise AuthorizationError('Only the session owner can invite users')
            if invited_user_id in session.invited_user_ids:
                return False
            session.invites.append(SessionInvite(user_id=invited_user_id))
            _touch(session)
            return True

        session, added = self._write(session_id, mutate)
        if added:
            self.broadcaster.broadcast_to_user(invited_user_id, 'session_invite', {
                'sessionId': session.id,
                'title': session.title,
                'invitedBy': owner_id
            })
        return added

    # --- Invite codes ---

    def generate_invite_code(self, session_id, user_id):
        def mutate(session):
            if session.owner_id != user_id:
                raise AuthorizationError('Only the session owner can create invite codes')
            # A colliding code fails the unique constraint and the write is retried
            session.invite_code = generate_invite_code()
            _touch(session)
            return session.invite_code

        _, code = self._write(session_id, mutate)
        return {
            'inviteCode': code,
            'inviteLink': f"{self.client_url}/code-collaboration/join/{code}"
        }

    def _session_for_code(self, invite_code):
        session = CodeSession.query.filter_by(invite_code=invite_code, is_active=True).first() \
            if invite_code else None
        if session is None:
            raise NotFoundError('Invalid invite code or session has ended')
        return session

    def get_session_by_invite_code(self, invite_code, user_id):
        session = self._session_for_code(invite_code)
        return {
            'session': format_session(session),
            'canJoin': session.can_user_join(user_id)
        }

    def join_by_invite_code(self, invite_code, user_id, origin_sid=None):
        session_id = self._session_for_code(invite_code).id

        def mutate(session):
            if session.invite_code != invite_code:
                raise NotFoundError('Invalid invite code or session has ended')
            if not session.can_user_join(user_id):
                raise AuthorizationError('You are not allowed to join this session')
            if session.find_participant(user_id) is None and user_id not in session.invited_user_ids:
                session.invites.append(SessionInvite(user_id=user_id))
            return self._admit(session, user_id)

        session, joined = self._write(session_id, mutate)
        if joined:
            self._announce_join(session, user_id, origin_sid)
            logger.info("[CODE SESSION] User %s joined session %s by invite code", user_id, session.id)
        return format_session(session)

    # --- Shared buffer ---

    def update_code(self, session_id, user_id, code, cursor_position=None, origin_sid=None):
        # Last write wins; the new version travels with the broadcast
        def mutate(session):
            participant = session.find_participant(user_id)
            if participant is None:
                raise AuthorizationError('You are not a participant of this session')
            session.code = code
            participant.last_active = utcnow()
            if cursor_position is not None:
                participant.cursor_position = cursor_position
            _touch(session)

        session, _ = self._write(session_id, mutate)
        payload = {
            'sessionId': session.id,
            'code': session.code,
            'updatedBy': user_id,
            'cursorPosition': cursor_position,
            'version': session.version
        }
        self.broadcaster.broadcast_to_room(self._room(session), 'code_updated', payload, skip_sid=origin_sid)
        return payload

    def update_cursor(self, session_id, user_id, cursor_position, origin_sid=None):
        # Only the participant row changes, so the session version stays put
        def mutate(session):
            participant = session.find_participant(user_id)
            if participant is None:
                raise AuthorizationError('You are not a participant of this session')
            participant.cursor_position = cursor_position
            participant.last_active = utcnow()

        session, _ = self._write(session_id, mutate)
        payload = {
            'sessionId': session.id,
            'userId': user_id,
            'cursorPosition': cursor_position
        }
        self.broadcaster.broadcast_to_room(self._room(session), 'cursor_updated', payload, skip_sid=origin_sid)
        return payload

    # --- Stats ---

    def get_session_stats(self):
        total = CodeSession.query.count()
        active = CodeSession.query.filter_by(is_active=True).count()
        participants = db.session.query(func.count(SessionParticipant.id)).join(
            CodeSession, CodeSession.id == SessionParticipant.session_id
        ).filter(CodeSession.is_active.is_(True)).scalar() or 0

        ended = CodeSession.query.filter(
            CodeSession.is_active.is_(False),
            CodeSession.ended_at.isnot(None)
        ).all()
        durations = [(s.ended_at - s.created_at).total_seconds() for s in ended if s.created_at]
        average_minutes = round(sum(durations) / len(durations) / 60) if durations else 0

        count = func.count(CodeSession.id)
        languages = db.session.query(CodeSession.language, count).filter(
            CodeSession.is_active.is_(True)
        ).group_by(CodeSession.language).order_by(count.desc(), CodeSession.language).limit(TOP_LANGUAGES).all()

        return {
            'totalSessions': total,
            'activeSessions': active,
            'totalParticipants': participants,
            'averageSessionDuration': average_minutes,
            'popularLanguages': [{'language': lang, 'count': n} for lang, n in languages]
        }
