"""
Presence Registry

Tracks which users currently hold at least one live connection. State is
process-local and rebuilt from zero on restart.
"""

import logging
import threading
from abc import ABC, abstractmethod
from typing import Dict, List, Set


class PresenceRegistry(ABC):
    """Interface for live connection bookkeeping"""

    @abstractmethod
    def start(self) -> None:
        pass

    @abstractmethod
    def stop(self) -> None:
        pass

    @abstractmethod
    def clear(self) -> None:
        pass

    @abstractmethod
    def connect(self, user_id: str, connection_id: str) -> None:
        pass

    @abstractmethod
    def disconnect(self, user_id: str, connection_id: str) -> None:
        pass

    @abstractmethod
    def count_active_users(self) -> int:
        """Number of distinct users with at least one connection"""

    @abstractmethod
    def connected_user_ids(self) -> List[str]:
        pass

    @abstractmethod
    def connections_for(self, user_id: str) -> Set[str]:
        pass


class InMemoryPresenceRegistry(PresenceRegistry):
    """userId -> set of connection ids"""

    def __init__(self):
        self.logger = logging.getLogger(__name__)
        self._connections: Dict[str, Set[str]] = {}
        self._lock = threading.Lock()
        self.running = False

    def start(self) -> None:
        with self._lock:
            self._connections.clear()
            self.running = True
        self.logger.info("Presence registry started")

    def stop(self) -> None:
        self.clear()
        self.running = False
        self.logger.info("Presence registry stopped")

    def clear(self) -> None:
        with self._lock:
            self._connections.clear()

    def connect(self, user_id: str, connection_id: str) -> None:
        if not user_id:
            return
        with self._lock:
            self._connections.setdefault(str(user_id), set()).add(str(connection_id))

    def disconnect(self, user_id: str, connection_id: str) -> None:
        if not user_id:
            return
        with self._lock:
            connections = self._connections.get(str(user_id))
            if connections is None:
                return
            connections.discard(str(connection_id))
            if not connections:
                del self._connections[str(user_id)]

    def count_active_users(self) -> int:
        with self._lock:
            return len(self._connections)

    def connected_user_ids(self) -> List[str]:
        with self._lock:
            return list(self._connections.keys())

    def connections_for(self, user_id: str) -> Set[str]:
        with self._lock:
            return set(self._connections.get(str(user_id), set()))
