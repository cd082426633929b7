from __future__ import annotations

from pokerroom_backend.engine.lifecycle import pending_blind
from pokerroom_backend.engine.models import (
    BETTING_PHASES,
    ActionType,
    AllowedActions,
    GameSnapshot,
)


def allowed_actions(snapshot: GameSnapshot, player_id: str | None) -> AllowedActions:
    """What ``player_id`` may do right now, mirroring the engine's own checks."""
    allowed = AllowedActions(pot_size=snapshot.pot_size)
    player = snapshot.player_by_id(player_id)
    if player is None:
        return allowed

    blind = pending_blind(snapshot)
    if blind is not None and blind.player_id == player.id:
        if blind.type is ActionType.SMALL_BLIND:
            allowed.can_post_small_blind = player.chip_count >= blind.amount
        else:
            allowed.can_post_big_blind = player.chip_count >= blind.amount

    if snapshot.phase not in BETTING_PHASES or snapshot.current_turn != player.seat:
        return allowed

    to_call = max(snapshot.highest_bet - player.current_bet, 0)
    allowed.can_fold = True
    allowed.can_check = to_call == 0
    allowed.can_call = to_call > 0 and player.chip_count >= to_call
    allowed.call_amount = to_call

    min_to = snapshot.highest_bet + snapshot.min_raise
    max_to = player.current_bet + player.chip_count
    if max_to >= min_to:
        allowed.min_raise_to = min_to
        allowed.max_raise_to = max_to
        allowed.can_bet = snapshot.highest_bet == 0
        allowed.can_raise = snapshot.highest_bet > 0
    return allowed
