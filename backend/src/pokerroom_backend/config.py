from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel, ConfigDict, Field

from pokerroom_backend.engine.models import TableConfig


ENV_PREFIX = "POKERROOM_"


class Settings(BaseModel):
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])
    log_level: str = "INFO"
    session_ttl_hours: int = Field(default=24 * 7, gt=0)
    default_small_blind: int = Field(default=5, gt=0)
    default_big_blind: int = Field(default=10, gt=0)
    default_starting_stack: int = Field(default=1_000, gt=0)
    max_players: int = Field(default=10, ge=2)

    model_config = ConfigDict(extra="forbid")

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Settings:
        env = os.environ if environ is None else environ
        values: dict[str, object] = {}
        origins = env.get(f"{ENV_PREFIX}CORS_ORIGINS")
        if origins:
            values["cors_origins"] = [o.strip() for o in origins.split(",") if o.strip()]
        for name in (
            "log_level",
            "session_ttl_hours",
            "default_small_blind",
            "default_big_blind",
            "default_starting_stack",
            "max_players",
        ):
            raw = env.get(f"{ENV_PREFIX}{name.upper()}")
            if raw is not None and raw != "":
                values[name] = raw
        return cls.model_validate(values)

    def table_defaults(self) -> TableConfig:
        return TableConfig(
            small_blind=self.default_small_blind,
            big_blind=self.default_big_blind,
            starting_stack=self.default_starting_stack,
            max_players=self.max_players,
        )


settings = Settings.from_env()
