from __future__ import annotations

from pokerroom_backend.engine.internal import TableRuntime
from pokerroom_backend.engine.models import PlayerSession
from pokerroom_backend.repo.base import TableRepository


class InMemoryTableRepository(TableRepository):
    def __init__(self) -> None:
        self._tables: dict[str, TableRuntime] = {}
        self._room_codes: dict[str, str] = {}
        self._sessions: dict[str, PlayerSession] = {}

    def create(self, table: TableRuntime) -> None:
        self._tables[table.table_id] = table
        self._room_codes[table.room_code.upper()] = table.table_id

    def get(self, table_id: str) -> TableRuntime:
        if table_id not in self._tables:
            raise KeyError(f"table {table_id} not found")
        return self._tables[table_id]

    def get_by_room_code(self, room_code: str) -> TableRuntime:
        table_id = self._room_codes.get(room_code.upper())
        if table_id is None:
            raise KeyError(f"room {room_code} not found")
        return self.get(table_id)

    def room_code_exists(self, room_code: str) -> bool:
        return room_code.upper() in self._room_codes

    def delete(self, table_id: str) -> None:
        table = self._tables.pop(table_id, None)
        if table is None:
            return
        self._room_codes.pop(table.room_code.upper(), None)
        self._sessions = {
            token: session
            for token, session in self._sessions.items()
            if session.table_id != table_id
        }

    def save_session(self, session: PlayerSession) -> None:
        self._sessions[session.token] = session

    def get_session(self, token: str) -> PlayerSession | None:
        return self._sessions.get(token)

    def delete_sessions(self, player_id: str) -> None:
        self._sessions = {
            token: session
            for token, session in self._sessions.items()
            if session.player_id != player_id
        }
