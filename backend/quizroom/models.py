import threading
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class RoundMode(str, Enum):
    IDLE = 'idle'
    ACTIVE = 'active'
    JUDGED = 'judged'
    GAME_OVER = 'game_over'


class ScoringMode(str, Enum):
    CLOSEST = 'closest'
    BUZZER = 'buzzer'


class ConnectionStatus(str, Enum):
    ACTIVE = 'active'
    DISCONNECTED = 'disconnected'


@dataclass(frozen=True)
class Question:
    prompt: str
    correct_answer: float

    def to_dict(self):
        return {'prompt': self.prompt}


@dataclass(frozen=True)
class ContentSet:
    """An immutable, ordered set of questions sharing one round duration."""
    content_id: str
    title: str
    questions: Tuple[Question, ...]
    round_duration_seconds: int

    def to_dict(self):
        return {
            'content_id': self.content_id,
            'title': self.title,
            'question_count': len(self.questions),
            'round_duration_seconds': self.round_duration_seconds,
        }


@dataclass
class Player:
    identity: str
    name: str
    score: int = 0
    status: ConnectionStatus = ConnectionStatus.ACTIVE

    @property
    def is_active(self):
        return self.status is ConnectionStatus.ACTIVE

    def to_dict(self):
        return {
            'name': self.name,
            'score': self.score,
            'status': self.status.value,
        }


@dataclass
class BuzzerState:
    locked: bool = False
    # {identity, name, time, question_index}
    buzzes: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self):
        return {
            'locked': self.locked,
            'buzzes': [{'name': b['name'], 'time': b['time']} for b in self.buzzes],
        }


@dataclass
class RoundState:
    question_index: int = -1
    mode: RoundMode = RoundMode.IDLE
    submissions: Dict[str, Any] = field(default_factory=dict)
    question: Optional[Question] = None
    timer: Any = None
    # Bumped per started timer; callbacks from older timers are stale
    timer_generation: int = 0
    deadline: Optional[float] = None
    # Set once the current question has been judged
    resolved: bool = False
    content_override: Optional[ContentSet] = None


@dataclass
class Room:
    code: str
    host_identity: str
    scoring_mode: ScoringMode = ScoringMode.CLOSEST
    participants: Dict[str, Player] = field(default_factory=dict)
    round: RoundState = field(default_factory=RoundState)
    buzzer: BuzzerState = field(default_factory=BuzzerState)
    teardown_call: Any = None
    lock: Any = field(default_factory=threading.RLock, repr=False, compare=False)

    def active_players(self):
        return [p for p in self.participants.values() if p.is_active]

    def scoreboard(self):
        """Players by score, highest first; ties keep join order."""
        ranked = sorted(self.participants.values(), key=lambda p: -p.score)
        return [{'name': p.name, 'score': p.score} for p in ranked]

    def to_dict(self):
        content = self.round.content_override
        return {
            'room_code': self.code,
            'scoring_mode': self.scoring_mode.value,
            'mode': self.round.mode.value,
            'question_index': self.round.question_index,
            'question': self.round.question.to_dict() if self.round.question else None,
            'deadline': self.round.deadline,
            'content_id': content.content_id if content else None,
            'players': [p.to_dict() for p in self.participants.values()],
            'submission_count': len(self.round.submissions),
            'buzzer': self.buzzer.to_dict(),
        }
