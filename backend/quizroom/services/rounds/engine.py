"""Round state machine: idle -> active -> judged -> ... -> game_over.

Every transition of a room runs under ``room.lock``. A question is judged
exactly once: both the "everyone answered" path and the timer path go
through ``_resolve``, which checks and sets ``round.resolved`` under that
lock, so whichever arrives second does nothing.
"""
import logging
import time
from typing import Any, Dict, Optional

from quizroom.exceptions import InvalidState, RoomNotFound, Unauthorized, ValidationError
from quizroom.models import Room, RoundMode, ScoringMode
from quizroom.services.rounds.registry import HOST, RoomRegistry
from quizroom.services.rounds.scoring import reset_buzzer, score_current_round, try_lock_buzzer

REASON_ALL_SUBMITTED = 'all_submitted'
REASON_TIMER = 'timer'


class RoundStateMachine:
    def __init__(self, registry: RoomRegistry, gateway, scheduler, grace_period_sec: float = 30,
                 max_answer_length: int = 64, logger=None):
        self.registry = registry
        self.gateway = gateway
        self.scheduler = scheduler
        self.grace_period_sec = grace_period_sec
        self.max_answer_length = max_answer_length
        self._logger = logger or logging.getLogger(__name__)

    # ---- room lifecycle ----

    def create_room(self, identity: str, scoring_mode=None) -> Room:
        room = self.registry.create_room(identity, scoring_mode)
        self.gateway.enroll(identity, room.code)
        self.gateway.to_connection(identity, 'room-created', {
            'room_code': room.code,
            'scoring_mode': room.scoring_mode.value,
        })
        return room

    def select_content(self, room_code, identity: str, content_id):
        content = self.registry.select_content(room_code, identity, content_id)
        room = self.registry.lookup(room_code)
        self.gateway.to_host(room.code, 'content-selected', {
            'room_code': room.code,
            'content': content.to_dict(),
        })
        return content

    def join(self, room_code, identity: str, name):
        room, player, reclaimed = self.registry.join(room_code, identity, name)
        self.gateway.enroll(identity, room.code)
        self.gateway.to_connection(identity, 'joined', {
            'room_code': room.code,
            'name': player.name,
            'score': player.score,
            'reclaimed': reclaimed,
            'scoring_mode': room.scoring_mode.value,
        })
        self._send_roster(room)
        with room.lock:
            if room.round.mode is RoundMode.ACTIVE:
                # Late joiners still get the open question
                self.gateway.to_connection(identity, 'new-question', self._question_payload(room))
        return player

    def disconnect(self, identity: str) -> None:
        detached = self.registry.mark_disconnected(identity)
        if detached is None:
            return
        room, role = detached
        if role == HOST:
            self._logger.info(f"[host-left] room={room.code} grace={self.grace_period_sec}s")
            self.gateway.to_room(room.code, 'host-left', {
                'room_code': room.code,
                'closes_in': self.grace_period_sec,
            })
            with room.lock:
                if room.teardown_call is None:
                    room.teardown_call = self.scheduler.schedule(
                        self.grace_period_sec, self.teardown, room.code,
                        label=f"teardown room={room.code}",
                    )
            return

        self._logger.info(f"[player-left] room={room.code} player={identity}")
        self._send_roster(room)
        with room.lock:
            if room.round.mode is RoundMode.ACTIVE and self._everyone_answered(room):
                self._resolve(room, REASON_ALL_SUBMITTED)

    def teardown(self, room_code: str) -> None:
        room = self.registry.remove(room_code)
        if room is None:
            return
        self._logger.info(f"[teardown] room={room_code}")
        self.gateway.to_room(room_code, 'room-closed', {'room_code': room_code})
        self.gateway.close(room_code)

    # ---- rounds ----

    def advance(self, room_code, identity: str) -> Room:
        room = self.registry.lookup(room_code)
        with room.lock:
            if room.host_identity != identity:
                raise Unauthorized('Only the host can advance the question.')
            state = room.round
            if state.mode not in (RoundMode.IDLE, RoundMode.JUDGED):
                raise InvalidState(f'Cannot advance while the round is {state.mode.value}.')
            content = self.registry.resolve_content(room)

            self._cancel_timer(room)
            state.question_index += 1
            if state.question_index >= len(content.questions):
                state.mode = RoundMode.GAME_OVER
                state.question = None
                state.deadline = None
                self._logger.info(f"[game-over] room={room.code} questions={len(content.questions)}")
                self.gateway.to_room(room.code, 'game-over', {
                    'room_code': room.code,
                    'scoreboard': room.scoreboard(),
                })
                return room

            state.mode = RoundMode.ACTIVE
            state.submissions = {}
            state.resolved = False
            state.question = content.questions[state.question_index]
            self._start_timer(room, content.round_duration_seconds)
            payload = self._question_payload(room)
            payload['total_questions'] = len(content.questions)
            self._logger.info(
                f"[question] room={room.code} index={state.question_index} duration={content.round_duration_seconds}s"
            )
            self.gateway.to_room(room.code, 'new-question', payload)
            return room

    def submit(self, room_code, identity: str, answer: Any) -> None:
        room = self.registry.lookup(room_code)
        if isinstance(answer, bool) or not isinstance(answer, (str, int, float)):
            raise ValidationError('Answers must be text or a number.')
        if isinstance(answer, str) and len(answer) > self.max_answer_length:
            raise ValidationError(f'Answers are limited to {self.max_answer_length} characters.')
        with room.lock:
            state = room.round
            if state.mode is not RoundMode.ACTIVE:
                raise InvalidState('No question is open for answers.')
            player = room.participants.get(identity)
            if player is None or not player.is_active:
                raise Unauthorized('Only players who joined this room can answer.')
            state.submissions[identity] = answer
            self.gateway.to_connection(identity, 'answer-received', {
                'room_code': room.code,
                'question_index': state.question_index,
            })
            self.gateway.to_host(room.code, 'submission-count', {
                'room_code': room.code,
                'submitted': len(state.submissions),
                'expected': len(room.active_players()),
            })
            if self._everyone_answered(room):
                self._resolve(room, REASON_ALL_SUBMITTED)

    def expire(self, room_code: str, question_index: int, generation: Optional[int] = None) -> None:
        """Deadline callback for ``question_index``; stale deadlines are ignored."""
        try:
            room = self.registry.lookup(room_code)
        except RoomNotFound:
            self._logger.info(f"[timer-abort] room={room_code} no longer exists")
            return
        with room.lock:
            state = room.round
            stale = generation is not None and generation != state.timer_generation
            if state.mode is not RoundMode.ACTIVE or state.question_index != question_index or stale:
                self._logger.info(
                    f"[timer-abort] room={room_code} expected_index={question_index} "
                    f"actual_index={state.question_index} mode={state.mode.value}"
                )
                return
            self._resolve(room, REASON_TIMER)

    def buzz(self, room_code, identity: str, name=None) -> None:
        """First buzz while unlocked locks the buzzer; later ones are dropped silently.

        The buzz is logged under the player's registered name, not ``name``.
        """
        room = self.registry.lookup(room_code)
        with room.lock:
            if room.scoring_mode is not ScoringMode.BUZZER:
                raise InvalidState('This room is not in buzzer mode.')
            player = room.participants.get(identity)
            if player is None or not player.is_active:
                raise Unauthorized('Only players who joined this room can buzz.')
            buzz = try_lock_buzzer(room.buzzer, identity, player.name, room.round.question_index)
            if buzz is None:
                return
            self._logger.info(f"[buzz] room={room.code} player={identity} name={player.name}")
            self.gateway.to_host(room.code, 'buzz-notification', {
                'room_code': room.code,
                'name': buzz['name'],
                'time': buzz['time'],
            })

    def host_reset(self, room_code, identity: str) -> None:
        room = self.registry.lookup(room_code)
        with room.lock:
            if room.host_identity != identity:
                raise Unauthorized('Only the host can reset the buzzer.')
            reset_buzzer(room.buzzer)
            self._logger.info(f"[buzzer-reset] room={room.code} mode={room.round.mode.value}")
            self.gateway.to_room(room.code, 'buzzer-reset', {'room_code': room.code, 'locked': False})
            if room.scoring_mode is ScoringMode.BUZZER and room.round.mode is RoundMode.ACTIVE:
                # Reopen the question with a fresh deadline
                self._cancel_timer(room)
                content = self.registry.resolve_content(room)
                self._start_timer(room, content.round_duration_seconds)
                self.gateway.to_room(room.code, 'round-timer', {
                    'room_code': room.code,
                    'question_index': room.round.question_index,
                    'deadline': room.round.deadline,
                })

    # ---- internals (caller holds room.lock) ----

    def _resolve(self, room: Room, reason: str) -> None:
        state = room.round
        if state.resolved or state.mode is not RoundMode.ACTIVE:
            return
        try:
            results = score_current_round(room, reason)
        except Exception:
            self._logger.exception(f"[round-resolve-error] room={room.code} index={state.question_index}")
            results = self._unjudged_results(room, reason)
        state.resolved = True
        self._cancel_timer(room)
        state.mode = RoundMode.JUDGED
        state.submissions = {}
        state.deadline = None
        self._logger.info(
            f"[round-resolve] room={room.code} index={state.question_index} reason={reason} winner={results['winner']}"
        )
        self.gateway.to_host(room.code, 'round-results', results)

    def _unjudged_results(self, room: Room, reason: str) -> Dict[str, Any]:
        """Results for a question that could not be judged: no winner, scores untouched."""
        state = room.round
        return {
            'room_code': room.code,
            'question_index': state.question_index,
            'prompt': state.question.prompt if state.question is not None else None,
            'correct_answer': state.question.correct_answer if state.question is not None else None,
            'scoring_mode': room.scoring_mode.value,
            'reason': reason,
            'winner': None,
            'answers': [
                {'name': p.name, 'answer': state.submissions.get(p.identity), 'valid': False, 'difference': None}
                for p in room.participants.values()
            ],
            'buzz': None,
            'scoreboard': room.scoreboard(),
        }

    def _everyone_answered(self, room: Room) -> bool:
        active = room.active_players()
        if not active:
            return False
        return all(p.identity in room.round.submissions for p in active)

    def _start_timer(self, room: Room, duration: int) -> None:
        state = room.round
        state.timer_generation += 1
        state.timer = self.scheduler.schedule(
            duration, self.expire, room.code, state.question_index, state.timer_generation,
            label=f"room={room.code} index={state.question_index}",
        )
        state.deadline = time.time() + duration

    def _cancel_timer(self, room: Room) -> None:
        if room.round.timer is not None:
            room.round.timer.cancel()
            room.round.timer = None

    def _send_roster(self, room: Room) -> None:
        self.gateway.to_host(room.code, 'roster-updated', {
            'room_code': room.code,
            'players': [p.to_dict() for p in room.participants.values()],
        })

    def _question_payload(self, room: Room) -> Dict[str, Any]:
        state = room.round
        return {
            'room_code': room.code,
            'question_index': state.question_index,
            'prompt': state.question.prompt,
            'duration': int(state.timer.delay) if state.timer is not None else None,
            'deadline': state.deadline,
        }
