from functools import wraps

from flask import current_app, request

from quizroom import socketio
from quizroom.exceptions import QuizRoomError, ValidationError


def _engine():
    return current_app.extensions['quizroom']


def _get_sid() -> str:
    # type: ignore: request.sid exists in Socket.IO context
    return request.sid  # type: ignore


def _payload(data) -> dict:
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError('Event payload must be an object')
    return data


def _room_code(data) -> str:
    code = data.get('room_code')
    if code is None or str(code).strip() == '':
        raise ValidationError('room_code is required')
    return str(code).strip()


def reports_errors(handler):
    """Send QuizRoomError back to the caller as an error-notice."""
    @wraps(handler)
    def wrapper(*args):
        try:
            return handler(*args)
        except QuizRoomError as exc:
            sid = _get_sid()
            current_app.logger.info(f"[rejected] event={handler.__name__} sid={sid} error={exc.code}: {exc}")
            _engine().gateway.to_connection(sid, 'error-notice', exc.to_dict())
    return wrapper


@reports_errors
def handle_create_room(data=None):
    data = _payload(data)
    _engine().create_room(_get_sid(), data.get('scoring_mode'))


@reports_errors
def handle_select_content(data=None):
    data = _payload(data)
    _engine().select_content(_room_code(data), _get_sid(), data.get('content_id'))


@reports_errors
def handle_join_room(data=None):
    data = _payload(data)
    _engine().join(_room_code(data), _get_sid(), data.get('name'))


@reports_errors
def handle_advance_question(data=None):
    data = _payload(data)
    _engine().advance(_room_code(data), _get_sid())


@reports_errors
def handle_submit_answer(data=None):
    data = _payload(data)
    if 'answer' not in data:
        raise ValidationError('answer is required')
    _engine().submit(_room_code(data), _get_sid(), data.get('answer'))


@reports_errors
def handle_buzz(data=None):
    data = _payload(data)
    _engine().buzz(_room_code(data), _get_sid(), data.get('name'))


@reports_errors
def handle_host_reset(data=None):
    data = _payload(data)
    _engine().host_reset(_room_code(data), _get_sid())


def handle_disconnect(*args):
    _engine().disconnect(_get_sid())


def register_socketio_handlers(namespace: str = '/ws') -> None:
    """Register Socket.IO event handlers on ``namespace``."""
    socketio.on_event('create-room', handle_create_room, namespace=namespace)
    socketio.on_event('select-content', handle_select_content, namespace=namespace)
    socketio.on_event('join-room', handle_join_room, namespace=namespace)
    socketio.on_event('advance-question', handle_advance_question, namespace=namespace)
    socketio.on_event('submit-answer', handle_submit_answer, namespace=namespace)
    socketio.on_event('buzz', handle_buzz, namespace=namespace)
    socketio.on_event('host-reset', handle_host_reset, namespace=namespace)
    socketio.on_event('disconnect', handle_disconnect, namespace=namespace)
