"""Round synchronization services: registry, state machine, judging, timers.

Transport-free apart from the gateway, which is the only piece that talks
to Socket.IO. Socket handlers and HTTP routes import from here.
"""
from quizroom.services.rounds.broadcast import BroadcastGateway
from quizroom.services.rounds.engine import RoundStateMachine
from quizroom.services.rounds.registry import RoomRegistry
from quizroom.services.rounds.scheduler import RoundScheduler, ScheduledCall

__all__ = [
    'BroadcastGateway',
    'RoomRegistry',
    'RoundScheduler',
    'RoundStateMachine',
    'ScheduledCall',
]
