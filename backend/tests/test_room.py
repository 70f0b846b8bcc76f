import random
import threading

import pytest

from guessroom.services.rooms.errors import (
    ChatDisabled,
    InvalidSettings,
    InvariantViolation,
    NotEnoughPlayers,
    NotHost,
    PlayerNotInRoom,
    RoomError,
    RoomFinished,
    RoomFull,
    RoomNotFound,
    RoundNotActive,
    StaleRound,
)
from guessroom.services.rooms import RoomManager
from guessroom.services.rooms.content import StaticContentProvider
from guessroom.services.rooms.evaluator import Outcome
from guessroom.services.rooms.ledger import UNANSWERED, ScoreLedger
from guessroom.services.rooms.machine import MAX_GUESS_LENGTH
from guessroom.services.rooms.state import RoomSettings, RoundState


def _join(manager, room_id, *player_ids):
    for pid in player_ids:
        manager.join(room_id, pid, pid.title())


def _events(manager, room_id, event_type):
    return [e.payload for e in manager.hub.history(room_id) if e.type == event_type]


def _state(manager, room_id, viewer_id=None):
    return manager.snapshot(room_id, viewer_id=viewer_id)


# ---- scenarios ----

def test_all_answered_resolves_round_without_timer(manager, room_id, spawner):
    _join(manager, room_id, 'alice', 'bob')
    started = manager.start_game(room_id, requested_by='alice')
    assert started['status'] == 'playing'
    assert started['current_round_index'] == 0
    assert started['round']['content']['id'] == 'car-ferrari'
    assert 'answers' not in started['round']

    exact = manager.submit_guess(room_id, 'alice', 0, 'Ferrari')
    assert exact.outcome == Outcome.EXACT
    assert _state(manager, room_id)['round']['answered'] == ['alice']

    close = manager.submit_guess(room_id, 'bob', 0, 'Ferari')
    assert close.outcome == Outcome.CLOSE
    assert exact.score_awarded == 1000
    assert close.score_awarded == 500

    resolved = _events(manager, room_id, 'round_resolved')
    assert len(resolved) == 1
    assert resolved[0]['round_index'] == 0
    assert resolved[0]['reason'] == 'all_answered'
    assert resolved[0]['answers'] == ['Ferrari', 'Ferrari 458']
    assert resolved[0]['scores'] == {'alice': 1000, 'bob': 500}

    state = _state(manager, room_id)
    assert state['current_round_index'] == 1
    assert state['round']['status'] == 'active'
    assert manager.timer.active(room_id).round_index == 1
    # Round 0's timer was canceled, only round 1's worker can fire
    spawner.run_pending()
    assert [r['round_index'] for r in _events(manager, room_id, 'round_resolved')] == [0, 1]


def test_timer_resolves_round_and_records_unanswered(manager, room_id, spawner):
    _join(manager, room_id, 'alice', 'bob')
    manager.start_game(room_id, requested_by='alice')
    manager.submit_guess(room_id, 'alice', 0, 'Ferrari')
    assert _events(manager, room_id, 'round_resolved') == []

    spawner.run_pending()

    resolved = _events(manager, room_id, 'round_resolved')
    assert [(r['round_index'], r['reason']) for r in resolved] == [(0, 'timer')]
    bob_entries = [e for e in manager.ledger.entries(room_id) if e.player_id == 'bob']
    assert [(e.kind, e.score, e.round_index) for e in bob_entries] == [(UNANSWERED, 0, 0)]
    assert _state(manager, room_id)['current_round_index'] == 1
    board = manager.leaderboard(room_id)
    assert [(r['player_id'], r['total']) for r in board] == [('alice', 1000), ('bob', 0)]


def test_join_leave_rejoin_before_start_keeps_one_player(manager, room_id):
    manager.join(room_id, 'alice', 'Alice')
    manager.leave(room_id, 'alice')
    manager.join(room_id, 'alice', 'Alice')
    state = _state(manager, room_id)
    assert len(state['players']) == 1
    assert state['players'][0]['connection_state'] == 'connected'
    assert state['active_count'] == 1
    assert [p['rejoined'] for p in _events(manager, room_id, 'player_joined')] == [False, True]


def test_full_game_finishes_after_last_round(manager, room_id, clock):
    _join(manager, room_id, 'alice', 'bob')
    manager.start_game(room_id, requested_by='alice')
    for index, answer in enumerate(['Ferrari', 'Beetle', 'Mustang']):
        clock.advance(3)
        manager.submit_guess(room_id, 'alice', index, answer)
        clock.advance(3)
        manager.submit_guess(room_id, 'bob', index, answer)

    state = _state(manager, room_id)
    assert state['status'] == 'finished'
    assert state['finished_at'] == clock()
    assert manager.timer.active(room_id) is None
    finished = _events(manager, room_id, 'game_finished')
    assert len(finished) == 1
    assert finished[0]['leaderboard'][0]['player_id'] == 'alice'

    with pytest.raises(RoomFinished):
        manager.join(room_id, 'cara')
    with pytest.raises(RoomFinished):
        manager.submit_guess(room_id, 'alice', 2, 'Mustang')
    with pytest.raises(RoomFinished):
        manager.start_game(room_id, requested_by='alice')


# ---- properties ----

def test_active_count_never_exceeds_max_players(manager, room_id):
    rng = random.Random(7)
    ids = [f'p{i}' for i in range(7)]
    room = manager.get(room_id).room
    for _ in range(300):
        pid = rng.choice(ids)
        try:
            if rng.random() < 0.6:
                manager.join(room_id, pid)
            else:
                manager.leave(room_id, pid)
        except (RoomFull, PlayerNotInRoom):
            pass
        assert room.active_count <= room.settings.max_players


def test_round_resolves_exactly_once_under_concurrency(manager, room_id, spawner):
    players = ['alice', 'bob', 'cara', 'dan']
    _join(manager, room_id, *players)
    manager.start_game(room_id, requested_by='alice')
    barrier = threading.Barrier(len(players) + 1)

    def guess(pid):
        barrier.wait()
        try:
            manager.submit_guess(room_id, pid, 0, 'Ferrari')
        except RoomError:
            pass

    def expire():
        barrier.wait()
        spawner.run_pending()

    threads = [threading.Thread(target=guess, args=(p,)) for p in players]
    threads.append(threading.Thread(target=expire))
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=10)

    resolved = [r['round_index'] for r in _events(manager, room_id, 'round_resolved')]
    started = [r['round']['round_index'] for r in _events(manager, room_id, 'round_started')]
    assert resolved.count(0) == 1
    assert started.count(1) == 1


def test_replayed_ledger_gives_same_leaderboard(manager, room_id, clock, spawner):
    _join(manager, room_id, 'alice', 'bob', 'cara')
    manager.start_game(room_id, requested_by='alice')
    clock.advance(4)
    manager.submit_guess(room_id, 'bob', 0, 'ferrari 458')
    manager.submit_guess(room_id, 'cara', 0, 'Ferari')
    spawner.run_pending()
    manager.submit_guess(room_id, 'alice', 1, 'vw beetle')

    before = manager.ledger.leaderboard(room_id)
    replayed = ScoreLedger.replay(manager.ledger.entries(room_id))
    assert replayed.leaderboard(room_id) == before
    assert manager.ledger.leaderboard(room_id) == before


# ---- guesses ----

def test_guess_rejections(manager, room_id):
    _join(manager, room_id, 'alice', 'bob', 'cara')
    with pytest.raises(RoundNotActive):
        manager.submit_guess(room_id, 'alice', 0, 'Ferrari')
    manager.start_game(room_id, requested_by='alice')
    with pytest.raises(StaleRound):
        manager.submit_guess(room_id, 'alice', 1, 'Beetle')
    with pytest.raises(StaleRound):
        manager.submit_guess(room_id, 'alice', 'nope', 'Beetle')
    with pytest.raises(PlayerNotInRoom):
        manager.submit_guess(room_id, 'zed', 0, 'Ferrari')
    manager.leave(room_id, 'cara')
    with pytest.raises(PlayerNotInRoom):
        manager.submit_guess(room_id, 'cara', 0, 'Ferrari')
    with pytest.raises(RoomNotFound):
        manager.submit_guess('missing', 'alice', 0, 'Ferrari')


def test_incorrect_guesses_can_retry_and_repeats_score_nothing(manager, room_id):
    _join(manager, room_id, 'alice', 'bob')
    manager.start_game(room_id, requested_by='alice')
    assert manager.submit_guess(room_id, 'alice', 0, 'Lamborghini').score_awarded == 0
    assert manager.submit_guess(room_id, 'alice', 0, 'Ferrari').score_awarded == 1000
    again = manager.submit_guess(room_id, 'alice', 0, 'Ferrari')
    assert again.outcome == Outcome.EXACT
    assert again.score_awarded == 0
    assert manager.ledger.round_scores(room_id, 0) == {'alice': 1000}


def test_score_decays_with_elapsed_time(manager, room_id, clock):
    _join(manager, room_id, 'alice', 'bob')
    manager.start_game(room_id, requested_by='alice')
    clock.advance(15)
    assert manager.submit_guess(room_id, 'alice', 0, 'Ferrari').score_awarded == 550


def test_overlong_guess_is_truncated_before_evaluation(manager, room_id):
    _join(manager, room_id, 'alice', 'bob')
    manager.start_game(room_id, requested_by='alice')
    guess = manager.submit_guess(room_id, 'alice', 0, 'Ferrari' + ' ' * 5000 + 'x')
    assert guess.outcome == Outcome.EXACT
    assert len(guess.raw_text) == MAX_GUESS_LENGTH


def test_late_guess_scores_zero_and_resolves_round(manager, room_id, clock, spawner):
    _join(manager, room_id, 'alice', 'bob')
    manager.start_game(room_id, requested_by='alice')
    clock.advance(31)

    late = manager.submit_guess(room_id, 'bob', 0, 'Ferrari')

    assert late.outcome == Outcome.EXACT
    assert late.score_awarded == 0
    resolved = _events(manager, room_id, 'round_resolved')
    assert [(r['round_index'], r['reason']) for r in resolved] == [(0, 'timer')]
    with pytest.raises(StaleRound):
        manager.submit_guess(room_id, 'alice', 0, 'Ferrari')
    # The round 0 timer finds nothing left to do
    spawner.run_pending()
    assert [r['round_index'] for r in _events(manager, room_id, 'round_resolved')] == [0, 1]


def test_departure_of_last_unanswered_player_resolves_round(manager, room_id):
    _join(manager, room_id, 'alice', 'bob', 'cara')
    manager.start_game(room_id, requested_by='alice')
    manager.submit_guess(room_id, 'alice', 0, 'Ferrari')
    manager.submit_guess(room_id, 'bob', 0, 'Ferrari')
    assert _events(manager, room_id, 'round_resolved') == []

    manager.leave(room_id, 'cara')

    resolved = _events(manager, room_id, 'round_resolved')
    assert resolved[0]['reason'] == 'all_answered'
    assert resolved[0]['scores']['cara'] == 0


def test_room_with_nobody_connected_waits_for_timer(manager, room_id, spawner):
    _join(manager, room_id, 'alice', 'bob')
    manager.start_game(room_id, requested_by='alice')
    manager.leave(room_id, 'alice')
    manager.leave(room_id, 'bob')
    state = _state(manager, room_id)
    assert state['round']['status'] == 'active'
    assert state['empty_since'] is not None

    spawner.run_pending()
    assert _events(manager, room_id, 'round_resolved')[0]['reason'] == 'timer'


# ---- roster ----

def test_room_full_counts_only_connected_players(manager, room_id):
    _join(manager, room_id, 'alice', 'bob', 'cara', 'dan')
    with pytest.raises(RoomFull):
        manager.join(room_id, 'erin')
    manager.leave(room_id, 'dan')
    manager.join(room_id, 'erin')
    with pytest.raises(RoomFull):
        manager.join(room_id, 'dan')


def test_start_requires_host_and_enough_players(manager, room_id):
    manager.join(room_id, 'alice')
    with pytest.raises(NotEnoughPlayers):
        manager.start_game(room_id, requested_by='alice')
    manager.join(room_id, 'bob')
    with pytest.raises(NotHost):
        manager.start_game(room_id, requested_by='bob')
    manager.start_game(room_id, requested_by='alice')
    # Starting again is a no-op
    manager.start_game(room_id, requested_by='alice')
    assert len(_events(manager, room_id, 'game_started')) == 1


def test_host_passes_to_longest_joined_player(manager, room_id, clock):
    manager.join(room_id, 'alice')
    clock.advance(1)
    manager.join(room_id, 'bob')
    clock.advance(1)
    manager.join(room_id, 'cara')
    assert _state(manager, room_id)['host_id'] == 'alice'

    manager.leave(room_id, 'alice')
    assert _state(manager, room_id)['host_id'] == 'bob'
    manager.join(room_id, 'alice')
    assert _state(manager, room_id)['host_id'] == 'bob'
    assert [e['host_id'] for e in _events(manager, room_id, 'host_changed')] == ['alice', 'bob']


def test_transfer_host(manager, room_id):
    _join(manager, room_id, 'alice', 'bob', 'cara')
    with pytest.raises(NotHost):
        manager.transfer_host(room_id, 'bob', 'bob')
    manager.leave(room_id, 'cara')
    with pytest.raises(PlayerNotInRoom):
        manager.transfer_host(room_id, 'alice', 'cara')
    manager.transfer_host(room_id, 'alice', 'bob')
    assert _state(manager, room_id, viewer_id='bob')['you']['is_host'] is True


def test_kick_removes_player_but_allows_rejoin(manager, room_id):
    _join(manager, room_id, 'alice', 'bob')
    with pytest.raises(NotHost):
        manager.kick(room_id, 'bob', 'alice')
    kicked = manager.kick(room_id, 'alice', 'bob')
    assert kicked.connection_state.value == 'left'
    assert [r['player_id'] for r in manager.leaderboard(room_id)] == ['alice']
    assert _events(manager, room_id, 'player_kicked')[0]['player']['id'] == 'bob'

    manager.join(room_id, 'bob')
    assert _state(manager, room_id)['active_count'] == 2


def test_kicked_player_drops_off_leaderboard_after_scoring(manager, room_id):
    _join(manager, room_id, 'alice', 'bob', 'cara')
    manager.start_game(room_id, requested_by='alice')
    assert manager.submit_guess(room_id, 'bob', 0, 'Ferrari').score_awarded == 1000

    manager.kick(room_id, 'alice', 'bob')
    board = manager.leaderboard(room_id)
    assert [r['player_id'] for r in board] == ['alice', 'cara']
    assert [r['player_id'] for r in _state(manager, room_id)['leaderboard']] == ['alice', 'cara']

    manager.submit_guess(room_id, 'alice', 0, 'Ferrari')
    manager.submit_guess(room_id, 'cara', 0, 'Ferrari')
    resolved = _events(manager, room_id, 'round_resolved')[0]
    assert 'bob' not in [r['player_id'] for r in resolved['leaderboard']]
    assert [e.player_id for e in manager.ledger.entries(room_id)].count('bob') == 1


# ---- settings and chat ----

def test_update_settings_while_waiting(manager, room_id):
    _join(manager, room_id, 'alice', 'bob', 'cara')
    settings = manager.update_settings(room_id, 'alice', {'round_duration_seconds': 10, 'rounds': 2, 'tolerance': 'strict'})
    assert settings.round_duration_seconds == 10
    state = _state(manager, room_id)
    assert state['total_rounds'] == 2
    assert state['settings']['tolerance'] == 'strict'

    with pytest.raises(NotHost):
        manager.update_settings(room_id, 'bob', {'rounds': 1})
    with pytest.raises(InvalidSettings):
        manager.update_settings(room_id, 'alice', {'colour': 'red'})
    with pytest.raises(InvalidSettings):
        manager.update_settings(room_id, 'alice', {'round_duration_seconds': 2})
    with pytest.raises(InvalidSettings):
        manager.update_settings(room_id, 'alice', {'max_players': 2})
    with pytest.raises(InvalidSettings):
        manager.update_settings(room_id, 'alice', {'tolerance': 'fuzzy'})

    manager.start_game(room_id, requested_by='alice')
    with pytest.raises(InvalidSettings):
        manager.update_settings(room_id, 'alice', {'rounds': 1})


def test_create_room_rejects_bad_settings(manager):
    with pytest.raises(InvalidSettings):
        manager.create_room('bad', {'min_players': 5, 'max_players': 3})


def test_chat(manager, room_id):
    _join(manager, room_id, 'alice', 'bob')
    message = manager.post_chat(room_id, 'alice', '  hello  ')
    assert message['text'] == 'hello'
    assert message['display_name'] == 'Alice'
    assert manager.post_chat(room_id, 'alice', '   ') is None
    assert [m['text'] for m in _state(manager, room_id)['chat']] == ['hello']

    manager.update_settings(room_id, 'alice', {'allow_chat': False})
    with pytest.raises(ChatDisabled):
        manager.post_chat(room_id, 'bob', 'hi')
    assert 'chat' not in _state(manager, room_id)


# ---- views ----

def test_snapshot_hides_answers_and_exact_text_while_round_active(manager, room_id):
    _join(manager, room_id, 'alice', 'bob', 'cara')
    manager.start_game(room_id, requested_by='alice')
    manager.submit_guess(room_id, 'alice', 0, 'Ferrari')
    manager.submit_guess(room_id, 'bob', 0, 'Ferari')

    state = _state(manager, room_id, viewer_id='alice')
    assert 'answers' not in state['round']
    assert [g['raw_text'] for g in state['recent_guesses']] == [None, 'Ferari']
    assert state['you']['answered'] is True
    assert state['you']['is_host'] is True

    manager.submit_guess(room_id, 'cara', 0, 'ferrari')
    state = _state(manager, room_id)
    assert [g['raw_text'] for g in state['recent_guesses']] == ['Ferrari', 'Ferari', 'ferrari']


def test_leaderboard_hidden_until_finished_when_disabled(manager):
    room_id = manager.create_room('quiet', {'show_leaderboard': False, 'rounds': 1})['id']
    _join(manager, room_id, 'alice', 'bob')
    assert 'leaderboard' not in _state(manager, room_id)
    manager.start_game(room_id, requested_by='alice')
    manager.submit_guess(room_id, 'alice', 0, 'Ferrari')
    manager.submit_guess(room_id, 'bob', 0, 'Ferrari')
    state = _state(manager, room_id)
    assert state['status'] == 'finished'
    assert [r['player_id'] for r in state['leaderboard']] == ['alice', 'bob']


def test_hidden_leaderboard_stays_out_of_round_events(manager):
    room_id = manager.create_room('quiet', {'show_leaderboard': False, 'rounds': 2})['id']
    _join(manager, room_id, 'alice', 'bob')
    manager.start_game(room_id, requested_by='alice')
    manager.submit_guess(room_id, 'alice', 0, 'Ferrari')
    manager.submit_guess(room_id, 'bob', 0, 'Ferrari')

    resolved = _events(manager, room_id, 'round_resolved')
    assert len(resolved) == 1
    assert 'leaderboard' not in resolved[0]
    assert resolved[0]['scores'] == {'alice': 1000, 'bob': 1000}
    assert manager.leaderboard(room_id, visible_only=True) is None
    assert len(manager.leaderboard(room_id)) == 2

    manager.submit_guess(room_id, 'alice', 1, 'Beetle')
    manager.submit_guess(room_id, 'bob', 1, 'Beetle')
    assert [r['player_id'] for r in manager.leaderboard(room_id, visible_only=True)] == ['alice', 'bob']


def test_subscriber_sees_every_event_in_order(manager, room_id):
    received = []
    snapshot, sub = manager.subscribe(room_id, listener=lambda name, msg: received.append((name, msg)))
    assert snapshot['seq'] == 0
    _join(manager, room_id, 'alice', 'bob')
    manager.start_game(room_id, requested_by='alice')
    manager.submit_guess(room_id, 'alice', 0, 'Ferrari')

    events = [msg for name, msg in received if name == 'room_event']
    assert [e['seq'] for e in events] == list(range(1, len(events) + 1))
    assert [e['type'] for e in events] == [e.type for e in manager.hub.history(room_id)]
    assert received[0][0] == 'room_snapshot'
    assert sub.drain() == []
    assert manager.snapshot(room_id)['seq'] == events[-1]['seq']

    fresh, resub = manager.subscribe(room_id, viewer_id='alice')
    assert fresh['seq'] == events[-1]['seq']
    assert fresh['you']['id'] == 'alice'
    manager.unsubscribe(resub)
    assert resub.closed


# ---- cancel, invariants, housekeeping ----

def test_cancel_stops_round_and_channel_but_keeps_ledger(manager, room_id):
    _join(manager, room_id, 'alice', 'bob')
    manager.start_game(room_id, requested_by='alice')
    manager.submit_guess(room_id, 'alice', 0, 'Ferrari')
    _, sub = manager.subscribe(room_id)

    with pytest.raises(NotHost):
        manager.cancel_room(room_id, requested_by='bob')
    manager.cancel_room(room_id, reason='host_abandoned', requested_by='alice')

    state = _state(manager, room_id)
    assert state['status'] == 'finished'
    assert state['canceled'] is True
    assert state['round']['resolution'] == 'canceled'
    assert manager.timer.active(room_id) is None
    assert sub.closed
    assert [e['type'] for e in sub.drain()] == ['room_canceled']
    assert manager.leaderboard(room_id)[0]['total'] == 1000
    with pytest.raises(RoomFinished):
        manager.join(room_id, 'cara')


def test_cancel_waiting_room(manager, room_id):
    manager.join(room_id, 'alice')
    manager.cancel_room(room_id)
    assert _state(manager, room_id)['status'] == 'finished'


def test_invariant_violation_forces_resync(manager, room_id, clock):
    _join(manager, room_id, 'alice', 'bob')
    manager.start_game(room_id, requested_by='alice')
    _, sub = manager.subscribe(room_id)
    room = manager.get(room_id).room
    room.rounds.append(RoundState(
        round_index=1,
        content=room.content_sequence[1],
        started_at=clock(),
        deadline_at=clock() + 30,
    ))

    with pytest.raises(InvariantViolation):
        manager.post_chat(room_id, 'alice', 'hello?')

    events = sub.drain()
    assert [e['type'] for e in events] == ['resync']
    assert events[0]['payload']['snapshot']['id'] == room_id
    assert manager.timer.active(room_id) is None


class RecordingStore:
    def __init__(self):
        self.saved = []
        self.entries = []

    def save_room(self, room):
        self.saved.append(room.id)

    def append_entries(self, entries):
        self.entries.extend(entries)

    def load_entries(self, room_id):
        return [e for e in self.entries if e.room_id == room_id]


def test_entries_recorded_before_invariant_failure_are_persisted(clock, spawner):
    store = RecordingStore()
    manager = RoomManager(
        content_provider=StaticContentProvider(),
        store=store,
        spawn=spawner,
        sleep=clock.sleep,
        clock=clock,
        default_settings=RoomSettings(min_players=2, max_players=4, round_duration_seconds=30, rounds=3),
    )
    room_id = manager.create_room('Test room')['id']
    _join(manager, room_id, 'alice', 'bob')
    manager.start_game(room_id, requested_by='alice')
    room = manager.get(room_id).room
    room.rounds.append(RoundState(
        round_index=1,
        content=room.content_sequence[1],
        started_at=clock(),
        deadline_at=clock() + 30,
    ))

    with pytest.raises(InvariantViolation):
        manager.submit_guess(room_id, 'alice', 0, 'Lamborghini')

    assert [(e.player_id, e.outcome) for e in store.load_entries(room_id)] == [('alice', 'incorrect')]
    assert store.load_entries(room_id) == manager.ledger.entries(room_id)


def test_cleanup_and_sweep(manager, room_id, clock):
    busy = manager.create_room('busy')['id']
    manager.join(busy, 'alice')
    assert [r['id'] for r in manager.list_rooms()] == [room_id, busy]

    clock.advance(301)
    assert manager.cleanup_candidates(300) == [room_id]

    assert manager.sweep(300) == [room_id]
    with pytest.raises(RoomNotFound):
        manager.snapshot(room_id)
    assert [r['id'] for r in manager.list_rooms()] == [busy]


def test_finished_rooms_listed_on_request(manager, room_id):
    manager.cancel_room(room_id)
    assert manager.list_rooms() == []
    assert [r['status'] for r in manager.list_rooms(include_finished=True)] == ['finished']
    assert manager.cleanup_candidates(300) == [room_id]


def test_swept_room_releases_its_ledger_entries(manager, room_id):
    other = manager.create_room('other')['id']
    for rid in (room_id, other):
        _join(manager, rid, 'alice', 'bob')
        manager.start_game(rid, requested_by='alice')
        manager.submit_guess(rid, 'alice', 0, 'Ferrari')
    manager.cancel_room(room_id)
    assert len(manager.ledger.entries(room_id)) == 1

    assert manager.sweep(300) == [room_id]
    assert manager.ledger.entries(room_id) == []
    assert [e.player_id for e in manager.ledger.entries(other)] == ['alice']
