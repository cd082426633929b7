from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from pokerroom_backend.engine.models import GameSnapshot, TableConfig


@dataclass
class TableRuntime:
    table_id: str
    config: TableConfig
    snapshot: GameSnapshot
    version: int = 0
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)

    @property
    def room_code(self) -> str:
        return self.snapshot.room_code

    def commit(self, snapshot: GameSnapshot) -> int:
        self.snapshot = snapshot
        self.version += 1
        return self.version
