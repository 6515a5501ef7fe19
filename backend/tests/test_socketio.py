NS = '/ws'


def _states(client):
    return [e['args'][0] for e in client.get_received(NS) if e['name'] == 'state_update']


def _room(make_sio_client):
    host = make_sio_client()
    guest = make_sio_client()
    ack = host.emit('create_room', {'name': 'Hemi'}, namespace=NS, callback=True)
    assert ack['ok'] is True
    code = ack['room_code']
    ack = guest.emit('join_room', {'room_code': code.lower(), 'name': 'Pita'}, namespace=NS, callback=True)
    assert ack['ok'] is True
    return host, guest, code, ack['player_id']


def test_socket_connect_and_ping(sio_client):
    assert sio_client.is_connected(NS)
    received = sio_client.get_received(NS)
    assert any(pkt['name'] == 'connected' for pkt in received)
    ack = sio_client.emit('ping', {'n': 1}, namespace=NS, callback=True)
    assert ack['ok'] is True
    assert any(pkt['name'] == 'pong' for pkt in sio_client.get_received(NS))


def test_commands_need_a_room(sio_client):
    ack = sio_client.emit('set_ready', {'ready': True}, namespace=NS, callback=True)
    assert ack == {'ok': False, 'code': 'NotInRoom', 'category': 'authorization', 'message': 'Join a room first'}
    assert any(pkt['name'] == 'error' for pkt in sio_client.get_received(NS))


def test_join_broadcasts_roster(make_sio_client):
    host, guest, code, _ = _room(make_sio_client)
    states = _states(host)
    assert any(len(s['players']) == 2 for s in states)
    # the joining socket gets a snapshot of its own
    assert _states(guest)[-1]['room_code'] == code


def test_rejected_command_goes_only_to_sender(make_sio_client):
    host, guest, code, _ = _room(make_sio_client)
    host.get_received(NS)
    guest.get_received(NS)
    ack = guest.emit('start_game', namespace=NS, callback=True)
    assert ack['ok'] is False
    assert ack['code'] == 'NotHost'
    assert [e['name'] for e in guest.get_received(NS)] == ['error']
    assert host.get_received(NS) == []


def test_full_turn_over_socket(make_sio_client):
    host, guest, code, guest_id = _room(make_sio_client)
    assert guest.emit('set_ready', {'ready': True}, namespace=NS, callback=True)['ok']
    ack = host.emit('start_game', namespace=NS, callback=True)
    assert ack == {'ok': True, 'turn_id': f'{code}:1'}
    received = host.get_received(NS)
    cues = [e['args'][0]['cue'] for e in received if e['name'] == 'audio_cue']
    assert 'gameStart' in cues

    assert host.emit('select_topic', {'topic_id': 'animals'}, namespace=NS, callback=True)['ok']
    assert host.emit('create_slot', {}, namespace=NS, callback=True)['slot_index'] == 0
    bad = host.emit('play_card', {'slot_index': 'zero', 'card_id': 'ngeru'}, namespace=NS, callback=True)
    assert bad['code'] == 'BadRequest'
    assert host.emit('play_card', {'slot_index': 0, 'card_id': 'ngeru'}, namespace=NS, callback=True)['ok']
    assert host.emit('submit_turn', {'translation': 'cat'}, namespace=NS, callback=True)['ok']
    ack = guest.emit('vote', {'approve': True, 'turn_id': f'{code}:1'}, namespace=NS, callback=True)
    assert ack['ok'] is True

    last = _states(host)[-1]
    assert last['turn']['outcome'] == 'approved'
    assert last['turn']['score_delta'] > 0
    assert host.emit('confirm_turn_end', namespace=NS, callback=True)['ok']
    assert _states(guest)[-1]['turn']['active_player_id'] == guest_id


def test_disconnect_marks_player_and_rejoin_restores(make_sio_client):
    host, guest, code, guest_id = _room(make_sio_client)
    host.get_received(NS)
    guest.disconnect(namespace=NS)
    statuses = {p['id']: p['status'] for p in _states(host)[-1]['players']}
    assert statuses[guest_id] == 'disconnected'

    again = make_sio_client()
    ack = again.emit('join_room', {'room_code': code, 'player_id': guest_id}, namespace=NS, callback=True)
    assert ack['ok'] is True
    assert ack['player_id'] == guest_id
    statuses = {p['id']: p['status'] for p in _states(host)[-1]['players']}
    assert statuses[guest_id] == 'connected'


def test_sync_returns_snapshot(make_sio_client):
    host, guest, code, _ = _room(make_sio_client)
    ack = guest.emit('sync', namespace=NS, callback=True)
    assert ack['state']['room_code'] == code
    assert 'server_time' in ack['state']


def test_host_close_notifies_room(make_sio_client, flask_app):
    host, guest, code, _ = _room(make_sio_client)
    guest.get_received(NS)
    assert host.emit('close_room', namespace=NS, callback=True)['ok']
    assert any(e['name'] == 'room_closed' for e in guest.get_received(NS))
    assert code not in flask_app.extensions['room_registry']


def test_late_disconnect_of_replaced_socket_is_ignored(make_sio_client, flask_app):
    host, guest, code, guest_id = _room(make_sio_client)
    again = make_sio_client()
    ack = again.emit('join_room', {'room_code': code, 'player_id': guest_id}, namespace=NS, callback=True)
    assert ack['ok'] is True

    # the old socket only now goes away
    guest.disconnect(namespace=NS)
    registry = flask_app.extensions['room_registry']
    statuses = {p['id']: p['status'] for p in registry.get(code).snapshot()['players']}
    assert statuses[guest_id] == 'connected'
    assert not registry.scheduler.is_scheduled((code, f'remove:{guest_id}'))

    again.get_received(NS)
    assert again.emit('set_ready', {'ready': True}, namespace=NS, callback=True)['ok']
    assert _states(again)[-1]['room_code'] == code


def test_moving_to_another_room_releases_the_first_seat(make_sio_client, flask_app):
    sock = make_sio_client()
    first = sock.emit('create_room', {'name': 'Hemi'}, namespace=NS, callback=True)
    second = sock.emit('create_room', {'name': 'Hemi'}, namespace=NS, callback=True)
    assert first['ok'] and second['ok']
    assert first['room_code'] != second['room_code']
    registry = flask_app.extensions['room_registry']

    first_host = registry.get(first['room_code']).snapshot()['players'][0]
    assert first_host['status'] == 'disconnected'
    assert registry.scheduler.is_scheduled((first['room_code'], f"remove:{first['player_id']}"))

    # room 1 traffic no longer reaches the socket
    sock.get_received(NS)
    other = make_sio_client()
    assert other.emit('join_room', {'room_code': first['room_code'], 'name': 'Pita'},
                      namespace=NS, callback=True)['ok']
    assert _states(sock) == []

    sock.disconnect(namespace=NS)
    second_host = registry.get(second['room_code']).snapshot()['players'][0]
    assert second_host['status'] == 'disconnected'
    first_host = registry.get(first['room_code']).snapshot()['players'][0]
    assert first_host['status'] == 'disconnected'


def test_chat_and_reactions_reach_the_room(make_sio_client):
    host, guest, code, guest_id = _room(make_sio_client)
    host.get_received(NS)
    ack = guest.emit('chat', {'text': '  Kia ora koutou  '}, namespace=NS, callback=True)
    assert ack['ok'] is True
    messages = [e['args'][0]['message'] for e in host.get_received(NS) if e['name'] == 'chat_message']
    assert len(messages) == 1
    assert messages[0]['content'] == 'Kia ora koutou'
    assert messages[0]['player_id'] == guest_id
    assert messages[0]['player_name'] == 'Pita'
    assert messages[0]['is_reaction'] is False
    assert messages[0]['id'] == ack['message_id']

    guest.emit('chat', {'text': 'a' * 500}, namespace=NS, callback=True)
    long_msg = [e['args'][0]['message'] for e in host.get_received(NS) if e['name'] == 'chat_message']
    assert len(long_msg[0]['content']) == 200

    ack = host.emit('reaction', {'emoji': '🔥'}, namespace=NS, callback=True)
    assert ack['ok'] is True
    reactions = [e['args'][0]['message'] for e in guest.get_received(NS) if e['name'] == 'chat_message']
    assert reactions[-1]['content'] == '🔥'
    assert reactions[-1]['is_reaction'] is True


def test_chat_rejections(make_sio_client, sio_client):
    ack = sio_client.emit('chat', {'text': 'hello'}, namespace=NS, callback=True)
    assert ack['code'] == 'NotInRoom'

    host, guest, code, _ = _room(make_sio_client)
    host.get_received(NS)
    assert guest.emit('chat', {'text': '   '}, namespace=NS, callback=True)['code'] == 'BadRequest'
    assert guest.emit('reaction', {'emoji': 'x'}, namespace=NS, callback=True)['code'] == 'BadRequest'
    assert not any(e['name'] == 'chat_message' for e in host.get_received(NS))


def test_host_adds_bot_over_socket(make_sio_client):
    host, guest, code, _ = _room(make_sio_client)
    ack = guest.emit('add_bot', {}, namespace=NS, callback=True)
    assert ack['code'] == 'NotHost'

    ack = host.emit('add_bot', {'name': 'Kahu'}, namespace=NS, callback=True)
    assert ack['ok'] is True
    assert ack['name'] == 'Kahu'
    bots = [p for p in _states(host)[-1]['players'] if p['is_bot']]
    assert [b['id'] for b in bots] == [ack['player_id']]
    assert bots[0]['ready'] is True

    taken = make_sio_client().emit('join_room', {'room_code': code, 'player_id': ack['player_id']},
                                   namespace=NS, callback=True)
    assert taken['code'] == 'BotSeat'
