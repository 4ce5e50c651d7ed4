"""Socket event handlers over the Flask-SocketIO test client."""

from conftest import events_named


def _chat_between(http, auth_headers, a, b):
    response = http.post('/api/v1/chats', json={'participants': [b.id], 'type': 'direct'}, headers=auth_headers(a))
    return response.get_json()['chat']['id']


def _public_session(http, auth_headers, owner, **fields):
    body = {'title': 'Live', 'isPublic': True}
    body.update(fields)
    response = http.post('/api/v1/code-sessions', json=body, headers=auth_headers(owner))
    return response.get_json()['session']['id']


def test_presence_online_and_offline(socket_client, make_user, services):
    alice, bob = make_user(), make_user()
    a = socket_client(alice)
    a.get_received()

    b = socket_client(bob)
    online = events_named(a, 'user_online')
    assert online == [{'userId': bob.id, 'isOnline': True, 'lastSeen': online[0]['lastSeen']}]
    # The connecting socket does not hear about itself
    assert events_named(b, 'user_online') == []

    b.disconnect()
    offline = events_named(a, 'user_offline')
    assert [e['userId'] for e in offline] == [bob.id]
    assert offline[0]['isOnline'] is False
    assert not services.registry.is_user_online(bob.id)


def test_superseded_socket_does_not_announce_offline(socket_client, make_user, services):
    alice, bob = make_user(), make_user()
    watcher = socket_client(alice)
    first = socket_client(bob)
    second = socket_client(bob)
    watcher.get_received()

    first.disconnect()
    assert events_named(watcher, 'user_offline') == []
    assert services.registry.is_user_online(bob.id)

    second.disconnect()
    assert [e['userId'] for e in events_named(watcher, 'user_offline')] == [bob.id]


def test_join_chat_requires_membership(socket_client, make_user, http, auth_headers):
    alice, bob, eve = make_user(), make_user(), make_user()
    chat_id = _chat_between(http, auth_headers, alice, bob)

    intruder = socket_client(eve)
    ack = intruder.emit('join_chat', {'chatId': chat_id}, callback=True)
    assert ack['success'] is False
    assert ack['code'] == 'authorization_error'

    member = socket_client(alice)
    assert member.emit('join_chat', chat_id, callback=True) == {'success': True, 'chatId': chat_id}


def test_message_reaches_joined_members(socket_client, make_user, http, auth_headers):
    alice, bob = make_user(), make_user()
    chat_id = _chat_between(http, auth_headers, alice, bob)
    a, b = socket_client(alice), socket_client(bob)
    a.emit('join_chat', {'chatId': chat_id}, callback=True)
    b.emit('join_chat', {'chatId': chat_id}, callback=True)
    a.get_received()
    b.get_received()

    response = http.post(
        '/api/v1/chats/messages', json={'chatId': chat_id, 'content': 'ping'}, headers=auth_headers(alice)
    )
    assert response.status_code == 201

    received = b.get_received()
    names = [event['name'] for event in received]
    assert 'new_message' in names
    assert 'chat_updated' in names
    assert 'new_notification' in names
    message = next(e['args'][0] for e in received if e['name'] == 'new_message')
    assert message['content'] == 'ping'
    assert [e['name'] for e in a.get_received()].count('new_notification') == 0


def test_typing_is_relayed_to_others(socket_client, make_user, http, auth_headers):
    alice, bob = make_user('alice', display_name='Alice'), make_user()
    chat_id = _chat_between(http, auth_headers, alice, bob)
    a, b = socket_client(alice), socket_client(bob)
    a.emit('join_chat', {'chatId': chat_id}, callback=True)
    b.emit('join_chat', {'chatId': chat_id}, callback=True)
    a.get_received()
    b.get_received()

    a.emit('typing_start', {'chatId': chat_id}, callback=True)
    a.emit('typing_stop', {'chatId': chat_id}, callback=True)

    typing = events_named(b, 'user_typing')
    assert typing == [
        {'userId': alice.id, 'userName': 'Alice', 'chatId': chat_id, 'isTyping': True},
        {'userId': alice.id, 'userName': 'Alice', 'chatId': chat_id, 'isTyping': False},
    ]
    assert events_named(a, 'user_typing') == []


def test_mark_as_read_relays_receipt(socket_client, make_user, http, auth_headers):
    alice, bob = make_user(), make_user()
    chat_id = _chat_between(http, auth_headers, alice, bob)
    http.post('/api/v1/chats/messages', json={'chatId': chat_id, 'content': 'x'}, headers=auth_headers(alice))
    a, b = socket_client(alice), socket_client(bob)
    a.emit('join_chat', {'chatId': chat_id}, callback=True)
    b.emit('join_chat', {'chatId': chat_id}, callback=True)
    a.get_received()

    ack = b.emit('mark_as_read', {'chatId': chat_id, 'messageId': 1}, callback=True)

    assert ack == {'success': True, 'chatId': chat_id, 'marked': 1}
    receipts = events_named(a, 'message_read')
    assert receipts[0]['userId'] == bob.id
    assert receipts[0]['messageId'] == 1


def test_code_change_reaches_other_participants(socket_client, make_user, http, auth_headers):
    owner, guest = make_user(), make_user()
    session_id = _public_session(http, auth_headers, owner)
    o, g = socket_client(owner), socket_client(guest)

    assert o.emit('join_session', {'sessionId': session_id}, callback=True)['success'] is True
    o.get_received()
    joined = g.emit('join_session', session_id, callback=True)
    assert joined['session']['participantCount'] == 2
    assert [e['user']['id'] for e in events_named(o, 'user_joined_session')] == [guest.id]
    g.get_received()

    ack = o.emit('code_change', {'sessionId': session_id, 'code': 'x = 1',
                                 'cursorPosition': {'line': 0, 'column': 5}}, callback=True)
    assert ack['success'] is True

    updates = events_named(g, 'code_updated')
    assert updates == [{
        'sessionId': session_id,
        'code': 'x = 1',
        'updatedBy': owner.id,
        'cursorPosition': {'line': 0, 'column': 5},
        'version': ack['version']
    }]
    assert events_named(o, 'code_updated') == []

    g.emit('cursor_move', {'sessionId': session_id, 'cursorPosition': {'line': 2, 'column': 1}}, callback=True)
    assert events_named(o, 'cursor_updated')[0]['userId'] == guest.id

    g.emit('user_typing_session', {'sessionId': session_id, 'isTyping': True}, callback=True)
    assert events_named(o, 'user_typing_session') == [
        {'sessionId': session_id, 'userId': guest.id, 'isTyping': True}
    ]


def test_full_session_rejects_join_without_entering_room(socket_client, make_user, http, auth_headers):
    owner, second, late = make_user(), make_user(), make_user()
    session_id = _public_session(http, auth_headers, owner, maxParticipants=2)
    o, s, l = socket_client(owner), socket_client(second), socket_client(late)
    o.emit('join_session', {'sessionId': session_id}, callback=True)
    s.emit('join_session', {'sessionId': session_id}, callback=True)

    ack = l.emit('join_session', {'sessionId': session_id}, callback=True)
    assert ack['success'] is False
    assert ack['code'] == 'capacity_error'
    l.get_received()

    o.emit('code_change', {'sessionId': session_id, 'code': 'secret'}, callback=True)
    assert events_named(l, 'code_updated') == []


def test_invalid_payload_is_acknowledged_as_error(socket_client, make_user):
    user = make_user()
    client = socket_client(user)

    ack = client.emit('code_change', {'sessionId': 'abc'}, callback=True)
    assert ack['success'] is False
    assert ack['code'] == 'validation_error'


def test_session_end_is_broadcast(socket_client, make_user, http, auth_headers):
    owner, guest = make_user(), make_user()
    session_id = _public_session(http, auth_headers, owner)
    g = socket_client(guest)
    g.emit('join_session', {'sessionId': session_id}, callback=True)
    g.get_received()

    response = http.put(f'/api/v1/code-sessions/{session_id}/end', headers=auth_headers(owner))
    assert response.status_code == 200

    ended = events_named(g, 'session_ended')
    assert ended[0]['sessionId'] == session_id
    assert ended[0]['reason'] == 'ended'


def test_failed_leave_keeps_socket_in_session_room(socket_client, make_user, http, auth_headers):
    owner, guest = make_user(), make_user()
    session_id = _public_session(http, auth_headers, owner)
    o, g = socket_client(owner), socket_client(guest)
    o.emit('join_session', {'sessionId': session_id}, callback=True)
    g.emit('join_session', {'sessionId': session_id}, callback=True)

    # The guest is no longer a participant, so the socket leave is refused
    assert http.post(f'/api/v1/code-sessions/{session_id}/leave', headers=auth_headers(guest)).status_code == 200
    ack = g.emit('leave_session', {'sessionId': session_id}, callback=True)
    assert ack['success'] is False
    assert ack['code'] == 'not_found'
    g.get_received()

    o.emit('code_change', {'sessionId': session_id, 'code': 'still here'}, callback=True)
    assert [e['code'] for e in events_named(g, 'code_updated')] == ['still here']
