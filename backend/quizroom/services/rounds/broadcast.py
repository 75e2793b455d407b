from typing import Any, Dict


def room_channel(room_code: str) -> str:
    return f"room:{room_code}"


class BroadcastGateway:
    """Emits engine events over Socket.IO.

    Holds no state of its own; the registry is only consulted to find a
    room's host connection.
    """

    def __init__(self, socketio, registry, namespace: str = '/ws'):
        self._socketio = socketio
        self._registry = registry
        self.namespace = namespace

    def to_host(self, room_code: str, event: str, payload: Dict[str, Any]) -> None:
        room = self._registry.lookup(room_code)
        self._socketio.emit(event, payload, to=room.host_identity, namespace=self.namespace)

    def to_room(self, room_code: str, event: str, payload: Dict[str, Any]) -> None:
        self._socketio.emit(event, payload, to=room_channel(room_code), namespace=self.namespace)

    def to_connection(self, identity: str, event: str, payload: Any) -> None:
        self._socketio.emit(event, payload, to=identity, namespace=self.namespace)

    def enroll(self, identity: str, room_code: str) -> None:
        self._socketio.server.enter_room(identity, room_channel(room_code), namespace=self.namespace)

    def close(self, room_code: str) -> None:
        self._socketio.close_room(room_channel(room_code), namespace=self.namespace)
