from flask import Blueprint, current_app, jsonify

from quizroom.exceptions import RoomNotFound

rooms = Blueprint('rooms', __name__)


def _engine():
    return current_app.extensions['quizroom']


@rooms.route('/rooms/<string:room_code>/state', methods=['GET'])
def get_room_state(room_code):
    try:
        room = _engine().registry.lookup(room_code)
    except RoomNotFound as exc:
        return jsonify(exc.to_dict()), 404
    with room.lock:
        payload = room.to_dict()
    payload['scoreboard'] = room.scoreboard()
    return jsonify(payload)


@rooms.route('/content', methods=['GET'])
def list_content():
    registry = _engine().registry
    return jsonify({
        'default': registry.default_content_id,
        'content': registry.catalog.available(),
    })
