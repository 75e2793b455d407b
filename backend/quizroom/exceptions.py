"""Errors raised by the room and round services.

Socket handlers turn any ``QuizRoomError`` into an ``error-notice`` event
for the connection that caused it; other rooms are never affected.
"""


class QuizRoomError(Exception):
    """Base class for every error reported back to a connection."""
    code = 'error'

    def to_dict(self):
        return {'error': self.code, 'message': str(self)}


class RoomNotFound(QuizRoomError):
    code = 'room_not_found'

    def __init__(self, room_code):
        self.room_code = room_code
        super().__init__('Room does not exist.')


class Unauthorized(QuizRoomError):
    """A non-host attempted a host-only action, or a stranger acted as a player."""
    code = 'unauthorized'


class InvalidState(QuizRoomError):
    """The action is not valid in the room's current round mode."""
    code = 'invalid_state'


class NoContentAvailable(QuizRoomError):
    code = 'no_content_available'

    def __init__(self, room_code):
        self.room_code = room_code
        super().__init__(f'No content set is available for room {room_code}.')


class InvalidContent(QuizRoomError):
    code = 'invalid_content'

    def __init__(self, content_id):
        self.content_id = content_id
        super().__init__(f'Unknown content set: {content_id}')


class LoadError(QuizRoomError):
    """A content set file could not be read or parsed."""
    code = 'load_error'


class ValidationError(QuizRoomError):
    """Malformed payload."""
    code = 'validation_error'
