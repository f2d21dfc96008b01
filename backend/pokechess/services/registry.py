import threading
from typing import Callable, Dict, List, Optional

from pokechess.services.room import Room


class RoomRegistry:
    """In-memory map of room key to live :class:`Room`, shared by all handlers."""

    def __init__(self, factory: Callable[[str], Room]):
        self._factory = factory
        self._rooms: Dict[str, Room] = {}
        self._lock = threading.Lock()

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._rooms

    def __len__(self) -> int:
        with self._lock:
            return len(self._rooms)

    def get(self, key: str) -> Optional[Room]:
        with self._lock:
            return self._rooms.get(key)

    def get_or_create(self, key: str) -> Room:
        with self._lock:
            room = self._rooms.get(key)
            if room is None:
                room = self._factory(key)
                self._rooms[key] = room
            return room

    def remove(self, key: str) -> bool:
        """Drop the room only if nobody is seated or watching."""
        with self._lock:
            room = self._rooms.get(key)
            if room is None:
                return False
            with room.lock:
                if not room.is_empty():
                    return False
                room.discarded = True
                del self._rooms[key]
            return True

    def list_active(self) -> List[str]:
        """Keys of human rooms with at least one seated player."""
        with self._lock:
            rooms = list(self._rooms.values())
        return [room.key for room in rooms if not room.is_computer_room and room.has_players()]
