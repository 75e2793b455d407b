import json
import re

import pytest

from conftest import SINGLE, TRIVIA
from quizroom.content import ContentCatalog, load_content
from quizroom.exceptions import (
    InvalidContent,
    InvalidState,
    LoadError,
    NoContentAvailable,
    RoomNotFound,
    Unauthorized,
    ValidationError,
)
from quizroom.models import ConnectionStatus, RoundMode, ScoringMode
from quizroom.services.rounds import RoomRegistry
from quizroom.services.rounds.registry import HOST, PLAYER


class ScriptedRandom:
    def __init__(self, values):
        self.values = list(values)

    def randint(self, low, high):
        return self.values.pop(0)


def test_room_codes_are_four_digits_and_unique(registry):
    codes = [registry.create_room(f'host-{i}').code for i in range(300)]
    assert len(set(codes)) == 300
    assert all(re.fullmatch(r'\d{4}', code) for code in codes)
    assert all(1000 <= int(code) <= 9999 for code in codes)


def test_room_code_collision_is_retried(catalog):
    registry = RoomRegistry(catalog, rng=ScriptedRandom([1234, 1234, 1234, 5678]))
    assert registry.create_room('h1').code == '1234'
    assert registry.create_room('h2').code == '5678'


def test_new_room_starts_idle(registry):
    room = registry.create_room('host')
    assert room.round.mode is RoundMode.IDLE
    assert room.round.question_index == -1
    assert room.participants == {}
    assert room.scoring_mode is ScoringMode.CLOSEST
    assert registry.lookup(room.code) is room


def test_create_room_rejects_unknown_scoring_mode(registry):
    with pytest.raises(ValidationError):
        registry.create_room('host', 'fastest')


def test_connection_cannot_host_two_rooms(registry):
    registry.create_room('host')
    with pytest.raises(InvalidState):
        registry.create_room('host')


def test_lookup_missing_room(registry):
    with pytest.raises(RoomNotFound):
        registry.lookup('0000')
    with pytest.raises(RoomNotFound):
        registry.lookup(None)


def test_select_content_is_host_only(registry):
    room = registry.create_room('host')
    with pytest.raises(Unauthorized):
        registry.select_content(room.code, 'someone-else', 'single')
    assert room.round.content_override is None
    assert registry.select_content(room.code, 'host', 'single') is SINGLE
    assert registry.resolve_content(room) is SINGLE


def test_select_content_rejects_unknown_ids(registry):
    room = registry.create_room('host')
    with pytest.raises(InvalidContent):
        registry.select_content(room.code, 'host', 'nope')
    with pytest.raises(InvalidContent):
        registry.select_content(room.code, 'host', '../etc/passwd')


def test_select_content_rejected_while_question_open(registry):
    room = registry.create_room('host')
    room.round.mode = RoundMode.ACTIVE
    with pytest.raises(InvalidState):
        registry.select_content(room.code, 'host', 'single')


def test_resolve_content_falls_back_to_default(registry):
    room = registry.create_room('host')
    assert registry.resolve_content(room) is TRIVIA


def test_resolve_content_without_any_content(catalog):
    registry = RoomRegistry(catalog, default_content_id=None)
    room = registry.create_room('host')
    with pytest.raises(NoContentAvailable):
        registry.resolve_content(room)

    registry = RoomRegistry(catalog, default_content_id='missing')
    room = registry.create_room('host')
    with pytest.raises(NoContentAvailable):
        registry.resolve_content(room)


def test_join_adds_player_with_zero_score(registry):
    room = registry.create_room('host')
    joined_room, player, reclaimed = registry.join(room.code, 'p1', '  Alice ')
    assert joined_room is room
    assert player.name == 'Alice'
    assert player.score == 0
    assert not reclaimed
    assert registry.is_host(room.code, 'host')
    assert not registry.is_host(room.code, 'p1')
    assert [p.name for p in registry.roster(room.code)] == ['Alice']


def test_join_unknown_room(registry):
    with pytest.raises(RoomNotFound):
        registry.join('9999', 'p1', 'Alice')
    assert registry.room_of('p1') is None


def test_join_into_room_removed_after_lookup(registry, monkeypatch):
    room = registry.create_room('host')
    registry.remove(room.code)
    monkeypatch.setattr(registry, 'lookup', lambda room_code: room)

    with pytest.raises(RoomNotFound):
        registry.join(room.code, 'p1', 'Alice')
    assert registry.room_of('p1') is None
    assert room.participants == {}


def test_join_validates_name(registry):
    room = registry.create_room('host')
    with pytest.raises(ValidationError):
        registry.join(room.code, 'p1', '   ')
    with pytest.raises(ValidationError):
        registry.join(room.code, 'p1', 'x' * 33)


def test_same_connection_cannot_join_twice(registry):
    room = registry.create_room('host')
    registry.join(room.code, 'p1', 'Alice')
    with pytest.raises(InvalidState):
        registry.join(room.code, 'p1', 'Alice again')
    with pytest.raises(InvalidState):
        registry.join(room.code, 'host', 'Sneaky host')


def test_names_need_not_be_unique(registry):
    room = registry.create_room('host')
    registry.join(room.code, 'p1', 'Sam')
    registry.join(room.code, 'p2', 'Sam')
    assert len(room.participants) == 2


def test_disconnect_keeps_slot_and_reclaim_by_name_keeps_score(registry):
    room = registry.create_room('host')
    registry.join(room.code, 'p1', 'Alice')
    registry.join(room.code, 'p2', 'Bob')
    room.participants['p1'].score = 3

    assert registry.mark_disconnected('p1') == (room, PLAYER)
    assert room.participants['p1'].status is ConnectionStatus.DISCONNECTED
    assert room.participants['p1'].score == 3

    _, player, reclaimed = registry.join(room.code, 'p1-new', 'Alice')
    assert reclaimed
    assert player.score == 3
    assert player.identity == 'p1-new'
    assert player.status is ConnectionStatus.ACTIVE
    # Join order is preserved
    assert list(room.participants) == ['p1-new', 'p2']


def test_reclaim_moves_pending_submission(registry):
    room = registry.create_room('host')
    registry.join(room.code, 'p1', 'Alice')
    registry.join(room.code, 'p2', 'Bob')
    room.round.submissions = {'p1': '10', 'p2': '20'}
    registry.mark_disconnected('p1')
    registry.join(room.code, 'p1-new', 'Alice')
    assert list(room.round.submissions.items()) == [('p1-new', '10'), ('p2', '20')]


def test_mark_disconnected_host_and_unknown(registry):
    room = registry.create_room('host')
    assert registry.mark_disconnected('host') == (room, HOST)
    assert registry.mark_disconnected('stranger') is None


def test_remove_cancels_timers_and_forgets_members(registry, scheduler):
    room = registry.create_room('host')
    registry.join(room.code, 'p1', 'Alice')
    timer = scheduler.schedule(10, lambda: None)
    room.round.timer = timer
    assert registry.remove(room.code) is room
    assert timer.cancelled
    assert registry.room_of('p1') is None
    assert registry.room_of('host') is None
    with pytest.raises(RoomNotFound):
        registry.lookup(room.code)
    assert registry.remove(room.code) is None


def test_load_content_from_disk(tmp_path):
    (tmp_path / 'movies.json').write_text(json.dumps({
        'title': 'Movies',
        'round_duration_seconds': 15,
        'questions': [{'prompt': 'Runtime of Titanic in minutes?', 'answer': 195}],
    }))
    (tmp_path / 'broken.json').write_text('{not json')
    catalog = ContentCatalog(str(tmp_path))

    assert catalog.available() == ['broken', 'movies']
    movies = catalog.get('movies')
    assert movies.title == 'Movies'
    assert movies.round_duration_seconds == 15
    assert movies.questions[0].correct_answer == 195
    assert catalog.get('movies') is movies
    with pytest.raises(LoadError):
        catalog.get('broken')
    with pytest.raises(InvalidContent):
        catalog.get('absent')


@pytest.mark.parametrize('data', [
    [],
    {'round_duration_seconds': 0, 'questions': []},
    {'round_duration_seconds': 10},
    {'round_duration_seconds': 10, 'questions': [{'prompt': 'Q'}]},
    {'round_duration_seconds': 10, 'questions': [{'prompt': '', 'answer': 1}]},
    {'round_duration_seconds': 10, 'questions': [{'prompt': 'Q', 'answer': 'seven'}]},
])
def test_load_content_rejects_malformed_files(tmp_path, data):
    path = tmp_path / 'bad.json'
    path.write_text(json.dumps(data))
    with pytest.raises(LoadError):
        load_content(str(path), 'bad')


def test_bundled_content_sets_load():
    import os
    from config import Config
    catalog = ContentCatalog(Config.CONTENT_DIR)
    assert 'general' in catalog.available()
    for content_id in catalog.available():
        assert catalog.get(content_id).questions
    assert os.path.isdir(Config.CONTENT_DIR)
