from __future__ import annotations

from abc import ABC, abstractmethod

from pokerroom_backend.engine.internal import TableRuntime
from pokerroom_backend.engine.models import PlayerSession


class TableRepository(ABC):
    @abstractmethod
    def create(self, table: TableRuntime) -> None:
        raise NotImplementedError

    @abstractmethod
    def get(self, table_id: str) -> TableRuntime:
        raise NotImplementedError

    @abstractmethod
    def get_by_room_code(self, room_code: str) -> TableRuntime:
        raise NotImplementedError

    @abstractmethod
    def room_code_exists(self, room_code: str) -> bool:
        raise NotImplementedError

    @abstractmethod
    def delete(self, table_id: str) -> None:
        raise NotImplementedError

    @abstractmethod
    def save_session(self, session: PlayerSession) -> None:
        raise NotImplementedError

    @abstractmethod
    def get_session(self, token: str) -> PlayerSession | None:
        raise NotImplementedError

    @abstractmethod
    def delete_sessions(self, player_id: str) -> None:
        raise NotImplementedError
