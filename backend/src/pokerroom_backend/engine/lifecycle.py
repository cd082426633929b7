from __future__ import annotations

from datetime import datetime

from pokerroom_backend.engine.actions import apply_action, reset_for_next_hand
from pokerroom_backend.engine.models import (
    ActionResult,
    ActionType,
    EngineError,
    ErrorKind,
    GameSnapshot,
    PendingBlind,
    Phase,
    WinAction,
)
from pokerroom_backend.engine.positions import big_blind_seat, small_blind_seat
from pokerroom_backend.engine.rounds import current_hand_actions


# Hand boundaries. The engine decides what the next state is; when to move on
# (a click on "next hand", a winner picked at showdown) is up to the caller.


def _rejected(kind: ErrorKind, message: str) -> ActionResult:
    return ActionResult(accepted=False, error=EngineError(code=kind, message=message))


def _wrong_phase(snapshot: GameSnapshot, what: str) -> ActionResult:
    return _rejected(
        ErrorKind.INVALID_ACTION_PHASE,
        f"Cannot {what} during {snapshot.phase.value}",
    )


def start_game(snapshot: GameSnapshot) -> ActionResult:
    """Seat the first dealer and set up the opening hand.

    The lowest eligible seat takes the button and the hand reset then rotates
    it once, exactly as between any two hands. Blinds are posted separately.
    """
    if snapshot.dealer_seat is not None:
        return _rejected(ErrorKind.GAME_ALREADY_STARTED, "Game has already started")
    eligible = sorted(
        p.seat for p in snapshot.players if p.chip_count > 0 and not p.is_sitting_out
    )
    if len(eligible) < 2:
        return _rejected(ErrorKind.NOT_ENOUGH_PLAYERS, "Need at least 2 active players to start")
    return reset_for_next_hand(snapshot.model_copy(update={"dealer_seat": eligible[0]}))


def resolve_showdown(
    snapshot: GameSnapshot,
    winner_id: str,
    declared_by: str | None = None,
    *,
    now: datetime | None = None,
) -> ActionResult:
    if snapshot.phase is not Phase.SHOWDOWN:
        return _wrong_phase(snapshot, "declare a winner")
    return apply_action(
        snapshot,
        WinAction(target_player_id=winner_id, player_id=declared_by),
        now=now,
    )


def start_next_hand(snapshot: GameSnapshot) -> ActionResult:
    if snapshot.phase is not Phase.HAND_OVER:
        return _wrong_phase(snapshot, "start the next hand")
    return reset_for_next_hand(snapshot)


def restart_game(snapshot: GameSnapshot, starting_stack: int) -> ActionResult:
    """Give every occupant a fresh stack once the game is over."""
    if snapshot.phase is not Phase.GAMEOVER:
        return _wrong_phase(snapshot, "restart the game")

    players = tuple(
        p.model_copy(
            update={
                "chip_count": starting_stack,
                "current_bet": 0,
                "has_folded": False,
                "is_active": not p.is_sitting_out,
            },
        )
        for p in snapshot.players
    )
    restarted = snapshot.model_copy(
        update={
            "players": players,
            "phase": Phase.SETUP,
            "pot_size": 0,
            "current_turn": None,
            "dealer_seat": None,
            "highest_bet": 0,
            "min_raise": snapshot.big_blind,
            "last_action": None,
        },
    )
    return ActionResult(accepted=True, snapshot=restarted)


def pending_blind(snapshot: GameSnapshot) -> PendingBlind | None:
    """The blind that has to be posted next while the hand waits in SETUP."""
    if snapshot.phase is not Phase.SETUP or snapshot.dealer_seat is None:
        return None

    posted = {r.type for r in current_hand_actions(snapshot.actions)}
    sb_seat = small_blind_seat(snapshot)
    if ActionType.SMALL_BLIND not in posted:
        blind_type, seat, amount = ActionType.SMALL_BLIND, sb_seat, snapshot.small_blind
    elif ActionType.BIG_BLIND not in posted:
        blind_type, seat, amount = (
            ActionType.BIG_BLIND,
            big_blind_seat(snapshot, sb_seat),
            snapshot.big_blind,
        )
    else:
        return None

    poster = snapshot.player_at_seat(seat)
    if poster is None:
        return None
    return PendingBlind(type=blind_type, player_id=poster.id, seat=poster.seat, amount=amount)
