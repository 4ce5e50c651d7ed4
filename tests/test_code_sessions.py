"""Code-session coordinator."""

from unittest.mock import MagicMock

import pytest
from sqlalchemy import text

from collabhub.errors import (
    AuthorizationError, CapacityError, ConcurrencyError, NotFoundError, ValidationError
)
from collabhub.extensions import db
from collabhub.models import CodeSession
from collabhub.schemas import CreateSessionRequest


@pytest.fixture
def sessions(services):
    coordinator = services.code_sessions
    coordinator.broadcaster = MagicMock()
    return coordinator


def _create(sessions, owner, **fields):
    fields.setdefault('title', 'Pairing')
    return sessions.create_session(owner.id, CreateSessionRequest(**fields))


def _broadcast_events(sessions):
    return [c.args[1] for c in sessions.broadcaster.broadcast_to_room.call_args_list]


def test_create_session_defaults(sessions, make_user):
    owner = make_user()
    session = _create(sessions, owner, language='python', tags=['algo'])

    assert session['maxParticipants'] == 10
    assert session['isActive'] is True
    assert session['language'] == 'python'
    assert session['tags'] == ['algo']
    assert [p['user']['id'] for p in session['participants']] == [owner.id]
    assert session['version'] == 1


def test_join_capacity_is_enforced(sessions, make_user):
    u1, u2, u3 = make_user(), make_user(), make_user()
    session = _create(sessions, u1, maxParticipants=2, isPublic=True)
    sessions.join_session(session['id'], u2.id)

    with pytest.raises(CapacityError):
        sessions.join_session(session['id'], u3.id)

    stored = db.session.get(CodeSession, session['id'])
    assert sorted(p.user_id for p in stored.participants) == sorted([u1.id, u2.id])


def test_join_is_idempotent(sessions, make_user):
    owner, guest = make_user(), make_user()
    session = _create(sessions, owner, isPublic=True)

    sessions.join_session(session['id'], guest.id)
    again = sessions.join_session(session['id'], guest.id)

    assert again['participantCount'] == 2
    assert _broadcast_events(sessions).count('user_joined_session') == 1


def test_private_session_requires_invite(sessions, make_user):
    owner, guest = make_user(), make_user()
    session = _create(sessions, owner)

    with pytest.raises(AuthorizationError):
        sessions.join_session(session['id'], guest.id)

    assert sessions.invite_user(session['id'], owner.id, guest.id) is True
    assert sessions.invite_user(session['id'], owner.id, guest.id) is False
    joined = sessions.join_session(session['id'], guest.id)
    assert joined['participantCount'] == 2


def test_only_owner_can_invite(sessions, make_user):
    owner, guest, other = make_user(), make_user(), make_user()
    session = _create(sessions, owner, isPublic=True)
    with pytest.raises(AuthorizationError):
        sessions.invite_user(session['id'], guest.id, other.id)
    with pytest.raises(NotFoundError):
        sessions.invite_user(session['id'], owner.id, 9999)


def test_end_then_delete(sessions, make_user):
    owner, guest = make_user(), make_user()
    session = _create(sessions, owner, isPublic=True)
    sessions.join_session(session['id'], guest.id)

    with pytest.raises(AuthorizationError):
        sessions.end_session(session['id'], guest.id)

    ended = sessions.end_session(session['id'], owner.id)
    assert ended['isActive'] is False
    assert ended['endedAt'] is not None
    with pytest.raises(ValidationError):
        sessions.end_session(session['id'], owner.id)

    assert sessions.delete_session(session['id'], owner.id) == session['id']
    assert db.session.get(CodeSession, session['id']) is None

    reasons = [
        c.args[2]['reason'] for c in sessions.broadcaster.broadcast_to_room.call_args_list
        if c.args[1] == 'session_ended'
    ]
    assert reasons == ['ended', 'deleted']


def test_ended_session_rejects_joins_and_edits(sessions, make_user):
    owner, guest = make_user(), make_user()
    session = _create(sessions, owner, isPublic=True)
    sessions.end_session(session['id'], owner.id)

    with pytest.raises(NotFoundError):
        sessions.join_session(session['id'], guest.id)
    with pytest.raises(NotFoundError):
        sessions.update_code(session['id'], owner.id, 'x = 1')


def test_leave_session(sessions, make_user):
    owner, guest = make_user(), make_user()
    session = _create(sessions, owner, isPublic=True)
    sessions.join_session(session['id'], guest.id)

    assert sessions.leave_session(session['id'], guest.id) is True
    with pytest.raises(NotFoundError):
        sessions.leave_session(session['id'], guest.id)

    stored = db.session.get(CodeSession, session['id'])
    assert [p.user_id for p in stored.participants] == [owner.id]
    assert stored.is_active is True


def test_update_code_round_trip(sessions, make_user):
    owner = make_user()
    session = _create(sessions, owner)

    result = sessions.update_code(
        session['id'], owner.id, 'print(1)', {'line': 1, 'column': 8}, origin_sid='sid-owner'
    )

    assert result['code'] == 'print(1)'
    assert result['version'] == 2
    stored = sessions.get_session(session['id'], owner.id)
    assert stored['code'] == 'print(1)'
    assert stored['participants'][0]['cursorPosition'] == {'line': 1, 'column': 8}

    call = sessions.broadcaster.broadcast_to_room.call_args
    assert call.args[:2] == (f"session:{session['id']}", 'code_updated')
    assert call.kwargs['skip_sid'] == 'sid-owner'


def test_last_code_write_wins(sessions, make_user):
    owner, guest = make_user(), make_user()
    session = _create(sessions, owner, isPublic=True)
    sessions.join_session(session['id'], guest.id)

    sessions.update_code(session['id'], owner.id, 'first')
    sessions.update_code(session['id'], guest.id, 'second')

    assert db.session.get(CodeSession, session['id']).code == 'second'
    codes = [
        c.args[2]['code'] for c in sessions.broadcaster.broadcast_to_room.call_args_list
        if c.args[1] == 'code_updated'
    ]
    assert codes == ['first', 'second']


def test_non_participant_cannot_edit(sessions, make_user):
    owner, outsider = make_user(), make_user()
    session = _create(sessions, owner, isPublic=True)
    with pytest.raises(AuthorizationError):
        sessions.update_code(session['id'], outsider.id, 'nope')
    assert db.session.get(CodeSession, session['id']).code == ''


def test_cursor_update_keeps_version(sessions, make_user):
    owner = make_user()
    session = _create(sessions, owner)

    payload = sessions.update_cursor(session['id'], owner.id, {'line': 3, 'column': 2})

    assert payload['cursorPosition'] == {'line': 3, 'column': 2}
    assert db.session.get(CodeSession, session['id']).version == 1


def test_stale_write_is_retried(sessions, make_user):
    owner = make_user()
    session = _create(sessions, owner)
    calls = []

    def mutate(row):
        calls.append(row.version)
        if len(calls) == 1:
            # A concurrent writer bumps the version behind our back
            db.session.execute(
                text('UPDATE code_session SET version = version + 1 WHERE id = :id'),
                {'id': row.id}
            )
        row.code = 'retried'
        row.title = f'attempt {len(calls)}'

    _, result = sessions._write(session['id'], mutate)

    assert len(calls) == 2
    assert db.session.get(CodeSession, session['id']).code == 'retried'


def test_persistent_conflict_raises(sessions, make_user):
    owner = make_user()
    session = _create(sessions, owner)

    def mutate(row):
        db.session.execute(
            text('UPDATE code_session SET version = version + 1 WHERE id = :id'),
            {'id': row.id}
        )
        row.code = 'never'

    with pytest.raises(ConcurrencyError):
        sessions._write(session['id'], mutate)
    db.session.expire_all()
    assert db.session.get(CodeSession, session['id']).code == ''


def test_invite_code_flow(sessions, make_user):
    owner, guest = make_user(), make_user()
    session = _create(sessions, owner, isPublic=True)

    invite = sessions.generate_invite_code(session['id'], owner.id)
    code = invite['inviteCode']
    assert len(code) == 8 and code.isalnum()
    assert invite['inviteLink'] == f'http://client.test/code-collaboration/join/{code}'

    preview = sessions.get_session_by_invite_code(code, guest.id)
    assert preview['canJoin'] is True
    assert preview['session']['id'] == session['id']

    joined = sessions.join_by_invite_code(code, guest.id)
    assert joined['participantCount'] == 2
    assert guest.id in joined['invitedUsers']

    with pytest.raises(NotFoundError):
        sessions.join_by_invite_code('missing1', guest.id)
    with pytest.raises(AuthorizationError):
        sessions.generate_invite_code(session['id'], guest.id)


def test_invite_code_on_private_session_needs_access(sessions, make_user):
    owner, guest = make_user(), make_user()
    session = _create(sessions, owner)
    code = sessions.generate_invite_code(session['id'], owner.id)['inviteCode']

    assert sessions.get_session_by_invite_code(code, guest.id)['canJoin'] is False
    with pytest.raises(AuthorizationError):
        sessions.join_by_invite_code(code, guest.id)


def test_listings(sessions, make_user):
    owner, guest = make_user(), make_user()
    public_py = _create(sessions, owner, title='py', language='python', isPublic=True)
    _create(sessions, owner, title='js', language='javascript', isPublic=True)
    private = _create(sessions, owner, title='secret')

    public = sessions.get_public_sessions(language='python')
    assert [s['id'] for s in public['sessions']] == [public_py['id']]
    assert public['total'] == 1 and public['pages'] == 1

    guest_view = sessions.get_user_sessions(guest.id)
    assert private['id'] not in [s['id'] for s in guest_view['sessions']]
    assert guest_view['total'] == 2

    owner_view = sessions.get_user_sessions(owner.id, page=1, limit=2)
    assert owner_view['total'] == 3
    assert owner_view['pages'] == 2
    assert len(owner_view['sessions']) == 2


def test_get_session_access(sessions, make_user):
    owner, guest = make_user(), make_user()
    private = _create(sessions, owner)
    with pytest.raises(AuthorizationError):
        sessions.get_session(private['id'], guest.id)
    with pytest.raises(NotFoundError):
        sessions.get_session(424242, owner.id)


def test_stats(sessions, make_user):
    owner, guest = make_user(), make_user()
    first = _create(sessions, owner, language='python', isPublic=True)
    _create(sessions, owner, language='python')
    _create(sessions, owner, language='go')
    sessions.join_session(first['id'], guest.id)
    ended = _create(sessions, owner, language='rust')
    sessions.end_session(ended['id'], owner.id)

    stats = sessions.get_session_stats()

    assert stats['totalSessions'] == 4
    assert stats['activeSessions'] == 3
    assert stats['totalParticipants'] == 4
    assert stats['averageSessionDuration'] == 0
    assert stats['popularLanguages'][0] == {'language': 'python', 'count': 2}
    assert {'language': 'rust', 'count': 1} not in stats['popularLanguages']
