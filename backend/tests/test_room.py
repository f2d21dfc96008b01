from pokechess.services.room import (
    ACTIVE, CONCLUDED, FIRST, SECOND, SPECTATOR, WAITING, ConnectionContext, Room,
)
from pokechess.services.rules import ChessRules

from conftest import SCHOLARS_MATE


def make_room(key='r1'):
    return Room(key, ChessRules())


def sent(outcome, conn=None, event=None):
    return [
        env for env in outcome.messages
        if (conn is None or env.conn is conn) and (event is None or env.event == event)
    ]


def seat_pair(room, first_name='Alice', second_name='Bob'):
    alice, bob = ConnectionContext('alice'), ConnectionContext('bob')
    room.join(alice, first_name)
    room.join(bob, second_name)
    return alice, bob


def play(room, conns, moves):
    outcome = None
    for i, (src, dst) in enumerate(moves):
        outcome = room.move(conns[i % 2], {'from': src, 'to': dst})
    return outcome


def test_seats_follow_join_order_then_spectators():
    room = make_room()
    conns = [ConnectionContext(f"c{i}") for i in range(4)]
    roles = []
    for conn in conns:
        room.join(conn, conn.sid)
        roles.append(conn.role)
    assert roles == [FIRST, SECOND, SPECTATOR, SPECTATOR]
    assert room.seated_count() == 2
    assert len(room.spectators) == 2
    assert all(c.room_key == 'r1' for c in conns)


def test_join_snapshot_and_opponent_notice():
    room = make_room()
    alice = ConnectionContext('alice')
    first = room.join(alice, 'Alice', {'trainerSprite': 'red'})
    snap = sent(first, alice, 'init_snapshot')[0].payload
    assert snap['color'] == FIRST
    assert snap['history'] == []
    assert snap['turn'] == 'w'
    assert snap['opponent_username'] is None
    assert snap['state'] == WAITING
    assert first.seated_name == 'Alice'

    bob = ConnectionContext('bob')
    second = room.join(bob, 'Bob', {'trainerSprite': 'blue'})
    snap = sent(second, bob, 'init_snapshot')[0].payload
    assert snap['color'] == SECOND
    assert snap['opponent_username'] == 'Alice'
    assert snap['opponent_character'] == {'trainerSprite': 'red'}
    assert snap['state'] == ACTIVE
    notice = sent(second, alice, 'opponent_joined')
    assert notice[0].payload == {'character': {'trainerSprite': 'blue'}, 'username': 'Bob'}


def test_spectator_join_does_not_notify_or_seat():
    room = make_room()
    seat_pair(room)
    carol = ConnectionContext('carol')
    outcome = room.join(carol, 'Carol')
    assert carol.role == SPECTATOR
    assert outcome.seated_name is None
    assert [env.event for env in outcome.messages] == ['init_snapshot']


def test_legal_move_broadcasts_to_everyone():
    room = make_room()
    alice, bob = seat_pair(room)
    carol = ConnectionContext('carol')
    room.join(carol, 'Carol')

    outcome = room.move(alice, {'from': 'e2', 'to': 'e4'})
    updates = sent(outcome, event='game_update')
    assert {env.conn.sid for env in updates} == {'alice', 'bob', 'carol'}
    payload = updates[0].payload
    assert payload['last_move']['san'] == 'e4'
    assert payload['turn'] == 'b'
    assert len(payload['history']) == 1
    assert len(room.history) == 1


def test_move_out_of_turn_is_silently_ignored():
    room = make_room()
    alice, bob = seat_pair(room)
    before = room.rules.serialize(room.position)
    outcome = room.move(bob, {'from': 'e7', 'to': 'e5'})
    assert outcome.messages == []
    assert room.rules.serialize(room.position) == before


def test_spectator_and_outsider_moves_are_ignored():
    room = make_room()
    seat_pair(room)
    carol = ConnectionContext('carol')
    room.join(carol, 'Carol')
    stranger = ConnectionContext('stranger')
    assert room.move(carol, {'from': 'e2', 'to': 'e4'}).messages == []
    assert room.move(stranger, {'from': 'e2', 'to': 'e4'}).messages == []
    assert room.history == []


def test_illegal_move_replies_error_to_sender_only():
    room = make_room()
    alice, bob = seat_pair(room)
    outcome = room.move(alice, {'from': 'e2', 'to': 'e5'})
    assert len(outcome.messages) == 1
    assert outcome.messages[0].conn is alice
    assert outcome.messages[0].event == 'error'
    assert room.history == []

    garbled = room.move(alice, {'from': 'z9'})
    assert [env.event for env in garbled.messages] == ['error']


def test_checkmate_marks_winner_and_rates_named_players():
    room = make_room()
    alice, bob = seat_pair(room)
    outcome = play(room, [alice, bob], SCHOLARS_MATE)
    assert outcome.result == ('Alice', 'Bob')
    assert room.winner == FIRST
    assert room.state == CONCLUDED
    final = sent(outcome, alice, 'game_update')[0].payload
    assert final['last_move']['san'] == 'Qxf7#'
    assert final['winner'] == FIRST


def test_checkmate_with_anonymous_player_is_not_rated():
    room = make_room()
    alice, bob = seat_pair(room, second_name='Anonymous')
    outcome = play(room, [alice, bob], SCHOLARS_MATE)
    assert room.winner == FIRST
    assert outcome.result is None


def test_surrender_declares_other_seat_winner():
    room = make_room()
    alice, bob = seat_pair(room)
    room.move(alice, {'from': 'e2', 'to': 'e4'})
    outcome = room.surrender(bob)
    assert outcome.result == ('Alice', 'Bob')
    payload = sent(outcome, alice, 'game_update')[0].payload
    assert payload['is_surrender'] is True
    assert payload['winner'] == FIRST
    assert len(payload['history']) == 1

    # Concluded games accept no further surrender or moves
    assert room.surrender(alice).messages == []
    assert room.move(alice, {'from': 'd2', 'to': 'd4'}).messages == []


def test_spectator_cannot_surrender():
    room = make_room()
    seat_pair(room)
    carol = ConnectionContext('carol')
    room.join(carol, 'Carol')
    assert room.surrender(carol).messages == []
    assert room.winner is None


def test_reset_clears_history_and_keeps_seats():
    room = make_room()
    alice, bob = seat_pair(room)
    room.move(alice, {'from': 'e2', 'to': 'e4'})
    room.surrender(bob)
    outcome = room.reset(bob)
    payload = sent(outcome, alice, 'game_update')[0].payload
    assert payload['history'] == []
    assert payload['turn'] == FIRST
    assert room.history == []
    assert room.winner is None and room.surrendered is False
    assert room.seats[FIRST].conn is alice and room.seats[SECOND].conn is bob
    assert room.state == ACTIVE


def test_chat_labels():
    room = make_room()
    alice, bob = seat_pair(room)
    carol = ConnectionContext('carol')
    room.join(carol, 'Carol')
    from_alice = room.chat(alice, 'gl hf')
    assert {env.conn.sid for env in from_alice.messages} == {'alice', 'bob', 'carol'}
    assert from_alice.messages[0].payload == {'username': 'Alice', 'text': 'gl hf'}
    from_carol = room.chat(carol, 'go bob')
    assert from_carol.messages[0].payload['username'] == 'Spectator'
    assert room.chat(ConnectionContext('ghost'), 'boo').messages == []


def test_leave_vacates_and_refills_seat():
    room = make_room()
    alice, bob = seat_pair(room)
    assert room.leave(alice) is False
    assert alice.room_key is None
    assert room.seats[FIRST].name is None
    dave = ConnectionContext('dave')
    room.join(dave, 'Dave')
    assert dave.role == FIRST
    assert room.leave(bob) is False
    assert room.leave(dave) is True


def test_computer_room_reserves_second_seat_and_asks_for_reply():
    room = make_room('ai-42')
    alice = ConnectionContext('alice')
    room.join(alice, 'Alice')
    bob = ConnectionContext('bob')
    room.join(bob, 'Bob')
    assert alice.role == FIRST
    assert bob.role == SPECTATOR
    assert room.state == ACTIVE

    outcome = room.move(alice, {'from': 'e2', 'to': 'e4'})
    assert outcome.computer_turn is True

    reply = room.computer_move(SECOND, lambda moves: moves[0])
    assert reply is not None
    assert room.turn == FIRST
    assert len(room.history) == 2
    # Stale expectation is a no-op
    assert room.computer_move(SECOND, lambda moves: moves[0]) is None


def test_computer_room_is_never_rated():
    room = make_room('ai-room')
    alice = ConnectionContext('alice')
    room.join(alice, 'Alice')
    room.seats[SECOND].name = 'Bot'
    assert room._rated_pair(FIRST) is None


def test_computer_move_on_discarded_room_is_noop():
    room = make_room('ai-1')
    alice = ConnectionContext('alice')
    room.join(alice, 'Alice')
    room.move(alice, {'from': 'e2', 'to': 'e4'})
    room.discarded = True
    assert room.computer_move(SECOND, lambda moves: moves[0]) is None


def test_refilled_first_seat_notifies_seated_second():
    room = make_room()
    alice, bob = seat_pair(room)
    room.leave(alice)
    dave = ConnectionContext('dave')
    outcome = room.join(dave, 'Dave', {'trainerSprite': 'gold'})
    assert dave.role == FIRST
    notice = sent(outcome, bob, 'opponent_joined')
    assert notice[0].payload == {'character': {'trainerSprite': 'gold'}, 'username': 'Dave'}


def test_first_seat_alone_gets_no_notice():
    room = make_room()
    outcome = room.join(ConnectionContext('alice'), 'Alice')
    assert [env.event for env in outcome.messages] == ['init_snapshot']


def test_moves_after_checkmate_are_silently_ignored():
    room = make_room()
    alice, bob = seat_pair(room)
    play(room, [alice, bob], SCHOLARS_MATE)
    assert room.state == CONCLUDED
    assert room.move(bob, {'from': 'a7', 'to': 'a6'}).messages == []
    assert len(room.history) == len(SCHOLARS_MATE)


def test_resend_snapshot_keeps_seat_and_history():
    room = make_room()
    alice, bob = seat_pair(room)
    room.move(alice, {'from': 'e2', 'to': 'e4'})
    outcome = room.resend_snapshot(alice)
    snap = sent(outcome, alice, 'init_snapshot')[0].payload
    assert snap['color'] == FIRST
    assert len(snap['history']) == 1
    assert room.seats[FIRST].conn is alice
    assert room.resend_snapshot(ConnectionContext('ghost')).messages == []
