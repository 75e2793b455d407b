"""Room registry: live rooms, their codes, members and content.

The registry only mutates state. It never broadcasts; the round engine
decides who hears about a change.
"""
import logging
import random
import threading
from typing import Dict, List, Optional, Tuple

from quizroom.content import ContentCatalog
from quizroom.exceptions import (
    InvalidContent,
    InvalidState,
    LoadError,
    NoContentAvailable,
    RoomNotFound,
    Unauthorized,
    ValidationError,
)
from quizroom.models import ConnectionStatus, ContentSet, Player, Room, RoundMode, ScoringMode

ROOM_CODE_MIN = 1000
ROOM_CODE_MAX = 9999

HOST = 'host'
PLAYER = 'player'


def parse_scoring_mode(value, default: ScoringMode) -> ScoringMode:
    if value is None or value == '':
        return default
    try:
        return ScoringMode(value)
    except ValueError:
        raise ValidationError(f"Unknown scoring mode: {value}") from None


class RoomRegistry:
    def __init__(self, catalog: ContentCatalog, default_content_id: Optional[str] = None,
                 default_scoring_mode: ScoringMode = ScoringMode.CLOSEST, max_name_length: int = 32,
                 rng: Optional[random.Random] = None, logger=None):
        self.catalog = catalog
        self.default_content_id = default_content_id
        self.default_scoring_mode = default_scoring_mode
        self.max_name_length = max_name_length
        self._rng = rng or random.Random()
        self._logger = logger or logging.getLogger(__name__)
        self._rooms: Dict[str, Room] = {}
        # connection identity -> room code it belongs to (as host or player)
        self._members: Dict[str, str] = {}
        self._lock = threading.Lock()

    # ---- rooms ----

    def _generate_code(self) -> str:
        if len(self._rooms) >= ROOM_CODE_MAX - ROOM_CODE_MIN + 1:
            raise InvalidState('No room codes are available right now.')
        code = str(self._rng.randint(ROOM_CODE_MIN, ROOM_CODE_MAX))
        while code in self._rooms:
            self._logger.warning(f"[room-code-collision] code={code} regenerating")
            code = str(self._rng.randint(ROOM_CODE_MIN, ROOM_CODE_MAX))
        return code

    def create_room(self, host_identity: str, scoring_mode=None) -> Room:
        mode = parse_scoring_mode(scoring_mode, self.default_scoring_mode)
        with self._lock:
            if host_identity in self._members:
                raise InvalidState(f"Connection already belongs to room {self._members[host_identity]}.")
            code = self._generate_code()
            room = Room(code=code, host_identity=host_identity, scoring_mode=mode)
            self._rooms[code] = room
            self._members[host_identity] = code
        self._logger.info(f"[room-create] room={code} host={host_identity} mode={mode.value}")
        return room

    def lookup(self, room_code) -> Room:
        room = self._rooms.get(str(room_code).strip()) if room_code is not None else None
        if room is None:
            raise RoomNotFound(room_code)
        return room

    def room_of(self, identity: str) -> Optional[str]:
        return self._members.get(identity)

    def remove(self, room_code: str) -> Optional[Room]:
        """Forget a room and its members. Pending timers are cancelled."""
        with self._lock:
            room = self._rooms.pop(room_code, None)
            if room is None:
                return None
            for identity, code in list(self._members.items()):
                if code == room_code:
                    del self._members[identity]
        with room.lock:
            if room.round.timer is not None:
                room.round.timer.cancel()
                room.round.timer = None
            if room.teardown_call is not None:
                room.teardown_call.cancel()
                room.teardown_call = None
        self._logger.info(f"[room-remove] room={room_code}")
        return room

    # ---- content ----

    def select_content(self, room_code, identity: str, content_id) -> ContentSet:
        room = self.lookup(room_code)
        if room.host_identity != identity:
            raise Unauthorized('Only the host can choose the content set.')
        content = self.catalog.get(content_id)
        with room.lock:
            if room.round.mode is RoundMode.ACTIVE:
                raise InvalidState('Content cannot change while a question is open.')
            room.round.content_override = content
        self._logger.info(f"[content-select] room={room.code} content={content.content_id}")
        return content

    def resolve_content(self, room: Room) -> ContentSet:
        """The room's override, else the process-wide default."""
        if room.round.content_override is not None:
            return room.round.content_override
        if self.default_content_id:
            try:
                return self.catalog.get(self.default_content_id)
            except (InvalidContent, LoadError) as exc:
                self._logger.warning(f"[content-default-missing] id={self.default_content_id} error={exc}")
        raise NoContentAvailable(room.code)

    # ---- participants ----

    def _clean_name(self, name) -> str:
        if not isinstance(name, str) or not name.strip():
            raise ValidationError('A player name is required.')
        name = name.strip()
        if len(name) > self.max_name_length:
            raise ValidationError(f'Player names are limited to {self.max_name_length} characters.')
        return name

    def join(self, room_code, identity: str, name) -> Tuple[Room, Player, bool]:
        """Add a player, or let a new connection reclaim a disconnected slot by name.

        Returns (room, player, reclaimed).
        """
        room = self.lookup(room_code)
        name = self._clean_name(name)
        with self._lock:
            if self._rooms.get(room.code) is not room:
                raise RoomNotFound(room_code)
            current = self._members.get(identity)
            if current is not None:
                raise InvalidState(f'Connection already belongs to room {current}.')
            self._members[identity] = room.code

        with room.lock:
            stale = next(
                (p for p in room.participants.values()
                 if p.status is ConnectionStatus.DISCONNECTED and p.name == name),
                None,
            )
            if stale is None:
                player = Player(identity=identity, name=name)
                room.participants[identity] = player
                reclaimed = False
            else:
                old_identity = stale.identity
                stale.identity = identity
                stale.status = ConnectionStatus.ACTIVE
                room.participants = _rekey(room.participants, old_identity, identity)
                if old_identity in room.round.submissions:
                    room.round.submissions = _rekey(room.round.submissions, old_identity, identity)
                player = stale
                reclaimed = True
        self._logger.info(
            f"[room-join] room={room.code} player={identity} name={name} reclaimed={reclaimed}"
        )
        return room, player, reclaimed

    def is_host(self, room_code, identity: str) -> bool:
        return self.lookup(room_code).host_identity == identity

    def roster(self, room_code) -> List[Player]:
        """Players in join order."""
        return list(self.lookup(room_code).participants.values())

    def mark_disconnected(self, identity: str):
        """Detach a connection from its room.

        Returns (room, HOST | PLAYER) or None when the connection was in no room.
        A player keeps their slot and score; their status becomes disconnected.
        """
        with self._lock:
            code = self._members.pop(identity, None)
            room = self._rooms.get(code) if code else None
        if room is None:
            return None
        if room.host_identity == identity:
            return room, HOST
        with room.lock:
            player = room.participants.get(identity)
            if player is not None:
                player.status = ConnectionStatus.DISCONNECTED
        return room, PLAYER


def _rekey(mapping: dict, old_key, new_key) -> dict:
    """Copy of ``mapping`` with ``old_key`` renamed, keeping its position."""
    return {(new_key if key == old_key else key): value for key, value in mapping.items()}
