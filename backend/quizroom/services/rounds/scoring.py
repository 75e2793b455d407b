import math
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from quizroom.models import BuzzerState, Player, Room, ScoringMode


def parse_numeric(raw: Any) -> Optional[float]:
    """Return the answer as a finite float, or None when it is not a number."""
    if isinstance(raw, bool):
        return None
    if isinstance(raw, (int, float)):
        try:
            value = float(raw)
        except OverflowError:
            return None
    elif isinstance(raw, str):
        try:
            value = float(raw.strip())
        except ValueError:
            return None
    else:
        return None
    return value if math.isfinite(value) else None


def judge_closest(submissions: Dict[str, Any], correct_answer: float,
                  participants: Dict[str, Player]) -> Tuple[Optional[str], Dict[str, Optional[float]]]:
    """Pick the submission nearest to ``correct_answer``.

    Submissions are walked in insertion order and only a strictly smaller
    difference replaces the leader, so the earliest submission wins a tie.
    Unparsable answers and identities no longer registered are skipped.
    Returns (winner identity or None, identity -> difference or None).
    """
    winner = None
    best = None
    differences: Dict[str, Optional[float]] = {}
    for identity, raw in submissions.items():
        value = parse_numeric(raw)
        if value is None or identity not in participants:
            differences[identity] = None
            continue
        diff = abs(value - correct_answer)
        differences[identity] = diff
        if best is None or diff < best:
            best = diff
            winner = identity
    return winner, differences


def try_lock_buzzer(buzzer: BuzzerState, identity: str, name: str,
                    question_index: int) -> Optional[Dict[str, Any]]:
    """Record a buzz if the buzzer is unlocked; a locked buzzer ignores it."""
    if buzzer.locked:
        return None
    buzz = {
        'identity': identity,
        'name': name,
        'time': datetime.now(timezone.utc).isoformat(),
        'question_index': question_index,
    }
    buzzer.locked = True
    buzzer.buzzes.append(buzz)
    return buzz


def reset_buzzer(buzzer: BuzzerState) -> None:
    buzzer.locked = False
    buzzer.buzzes = []


def judge_first_lock(buzzer: BuzzerState, question_index: int,
                     participants: Dict[str, Player]) -> Optional[str]:
    """The first buzz logged during this question wins, if its player is still registered."""
    for buzz in buzzer.buzzes:
        if buzz['question_index'] != question_index:
            continue
        if buzz['identity'] in participants:
            return buzz['identity']
        return None
    return None


def score_current_round(room: Room, reason: str) -> Dict[str, Any]:
    """Judge the room's current question, apply the score and build the results.

    +1 to the winner; nobody else changes. Results list every player in
    join order with their raw answer (or None) and the scoreboard by
    standings.
    """
    state = room.round
    question = state.question
    submissions = state.submissions

    winner, differences = judge_closest(submissions, question.correct_answer, room.participants)
    if room.scoring_mode is ScoringMode.BUZZER:
        winner = judge_first_lock(room.buzzer, state.question_index, room.participants)

    if winner is not None:
        room.participants[winner].score += 1

    answers: List[Dict[str, Any]] = []
    for identity, player in room.participants.items():
        raw = submissions.get(identity)
        diff = differences.get(identity)
        answers.append({
            'name': player.name,
            'answer': raw,
            'valid': diff is not None,
            'difference': diff,
        })

    first_buzz = next(
        (b for b in room.buzzer.buzzes if b['question_index'] == state.question_index), None
    )
    return {
        'room_code': room.code,
        'question_index': state.question_index,
        'prompt': question.prompt,
        'correct_answer': question.correct_answer,
        'scoring_mode': room.scoring_mode.value,
        'reason': reason,
        'winner': room.participants[winner].name if winner is not None else None,
        'answers': answers,
        'buzz': {'name': first_buzz['name'], 'time': first_buzz['time']} if first_buzz else None,
        'scoreboard': room.scoreboard(),
    }
