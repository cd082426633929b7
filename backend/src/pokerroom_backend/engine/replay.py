from __future__ import annotations

from collections.abc import Iterable, Mapping
from datetime import datetime
from typing import Any

from pokerroom_backend.engine.actions import apply_action
from pokerroom_backend.engine.models import (
    PLAYER_ACTION_ADAPTER,
    EngineError,
    ErrorKind,
    GameSnapshot,
    PlayerAction,
    ReplayResult,
    ReplayStep,
)
from pokerroom_backend.utils.hashing import model_hash


def replay(
    snapshot: GameSnapshot,
    actions: Iterable[PlayerAction | Mapping[str, Any]],
    *,
    now: datetime | None = None,
) -> ReplayResult:
    """Re-apply a recorded action sequence and check the chip invariants.

    Rejected steps are collected rather than aborting the run, the same way a
    live table keeps its state when an action is refused.
    """
    current = snapshot
    total_chips = snapshot.total_chips()
    rejected: list[ReplayStep] = []
    chips_conserved = True
    non_negative = True
    history_appended = True

    for index, raw in enumerate(actions):
        action_type = _action_type(raw)
        result = apply_action(current, raw, now=now)
        if not result.accepted or result.snapshot is None:
            error = result.error or EngineError(
                code=ErrorKind.INTERNAL_ERROR,
                message="engine returned no snapshot",
            )
            rejected.append(ReplayStep(index=index, action_type=action_type, error=error))
            continue

        before = len(current.actions)
        current = result.snapshot
        chips_conserved &= current.total_chips() == total_chips
        non_negative &= all(p.chip_count >= 0 for p in current.players)
        # a fold-out appends the FOLD and the automatic WIN
        history_appended &= len(current.actions) - before in (1, 2)

    return ReplayResult(
        final_snapshot=current,
        rejected_steps=rejected,
        invariant_checks={
            "chip_conservation": chips_conserved,
            "no_negative_stacks": non_negative,
            "history_append_only": history_appended,
        },
        state_hash=model_hash(current),
    )


def _action_type(raw: PlayerAction | Mapping[str, Any]) -> str:
    if isinstance(raw, Mapping):
        return str(raw.get("type"))
    return raw.type


def load_actions(payload: Iterable[Mapping[str, Any]]) -> list[PlayerAction]:
    return [PLAYER_ACTION_ADAPTER.validate_python(item) for item in payload]
