from __future__ import annotations

from collections.abc import Callable, Mapping
from datetime import datetime, timezone
from typing import Any

from pydantic import ValidationError

from pokerroom_backend.engine.models import (
    BETTING_PHASES,
    PLAYER_ACTION_ADAPTER,
    ActionRecord,
    ActionResult,
    ActionType,
    BetAction,
    BigBlindAction,
    CallAction,
    CheckAction,
    EngineError,
    ErrorKind,
    FoldAction,
    GameSnapshot,
    Phase,
    PlayerAction,
    PlayerState,
    RaiseAction,
    SitInAction,
    SitOutAction,
    SmallBlindAction,
    WinAction,
)
from pokerroom_backend.engine.positions import (
    big_blind_seat,
    first_to_act_seat,
    seat_after,
    small_blind_seat,
)
from pokerroom_backend.engine.rounds import current_hand_actions, is_round_complete


# Pure transitions: GameSnapshot in, GameSnapshot (or a rejection) out. Nothing
# here touches storage, the clock (except as a default), or shared state.


class ActionRejected(Exception):
    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


_NEXT_PHASE = {
    Phase.PREFLOP: Phase.FLOP,
    Phase.FLOP: Phase.TURN,
    Phase.TURN: Phase.RIVER,
    Phase.RIVER: Phase.SHOWDOWN,
}


def apply_action(
    snapshot: GameSnapshot,
    action: PlayerAction | Mapping[str, Any],
    *,
    now: datetime | None = None,
) -> ActionResult:
    """Apply one action to ``snapshot`` and return the successor state.

    Invalid input never raises: every rejection comes back as an
    ``ActionResult`` with ``accepted=False`` and the caller's snapshot is left
    untouched.
    """
    return _guarded(lambda: _dispatch(snapshot, action, now or _utcnow()))


def reset_for_next_hand(snapshot: GameSnapshot) -> ActionResult:
    """Move the button and prepare a fresh hand waiting for its blinds."""
    return _guarded(lambda: _reset_for_next_hand(snapshot))


def _guarded(transition: Callable[[], GameSnapshot]) -> ActionResult:
    try:
        updated = transition()
    except ActionRejected as exc:
        return ActionResult(
            accepted=False,
            error=EngineError(code=exc.kind, message=exc.message),
        )
    return ActionResult(accepted=True, snapshot=updated)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _coerce_action(action: PlayerAction | Mapping[str, Any]) -> PlayerAction:
    if isinstance(action, Mapping):
        try:
            return PLAYER_ACTION_ADAPTER.validate_python(action)
        except ValidationError as exc:
            raise ActionRejected(
                ErrorKind.INVALID_ACTION,
                f"Invalid action type: {action.get('type')!r} ({exc.error_count()} validation errors)",
            ) from exc
    return action


def _dispatch(
    snapshot: GameSnapshot,
    raw_action: PlayerAction | Mapping[str, Any],
    now: datetime,
) -> GameSnapshot:
    action = _coerce_action(raw_action)
    if isinstance(action, FoldAction):
        return _fold(snapshot, action, now)
    if isinstance(action, CheckAction):
        return _check(snapshot, action, now)
    if isinstance(action, CallAction):
        return _call(snapshot, action, now)
    if isinstance(action, (BetAction, RaiseAction)):
        return _bet_or_raise(snapshot, action, now)
    if isinstance(action, SmallBlindAction):
        return _small_blind(snapshot, action, now)
    if isinstance(action, BigBlindAction):
        return _big_blind(snapshot, action, now)
    if isinstance(action, SitOutAction):
        return _sit_out(snapshot, action, now)
    if isinstance(action, SitInAction):
        return _sit_in(snapshot, action, now)
    if isinstance(action, WinAction):
        return _win(snapshot, action, now)
    raise ActionRejected(ErrorKind.INVALID_ACTION, f"Invalid action type: {action!r}")


# -- shared helpers ---------------------------------------------------------


def _record(
    snapshot: GameSnapshot,
    action_type: ActionType,
    now: datetime,
    *,
    player_id: str | None = None,
    target_player_id: str | None = None,
    amount: int | None = None,
) -> ActionRecord:
    return ActionRecord(
        seq=len(snapshot.actions) + 1,
        type=action_type,
        player_id=player_id,
        target_player_id=target_player_id,
        amount=amount,
        phase=snapshot.phase,
        created_at=now,
    )


def _with_record(snapshot: GameSnapshot, record: ActionRecord, **update: Any) -> GameSnapshot:
    update["last_action"] = record
    update["actions"] = snapshot.actions + (record,)
    return snapshot.model_copy(update=update)


def _update_player(
    players: tuple[PlayerState, ...],
    player_id: str,
    **changes: Any,
) -> tuple[PlayerState, ...]:
    return tuple(
        p.model_copy(update=changes) if p.id == player_id else p
        for p in players
    )


def _require_player_id(player_id: str | None, verb: str) -> str:
    if not player_id:
        raise ActionRejected(ErrorKind.INVALID_ACTION, f"Player ID is required for {verb} action")
    return player_id


def _require_betting_phase(snapshot: GameSnapshot, verb: str) -> None:
    if snapshot.phase is Phase.SHOWDOWN:
        raise ActionRejected(ErrorKind.INVALID_ACTION_PHASE, f"Cannot {verb} during Showdown")
    if snapshot.phase not in BETTING_PHASES:
        raise ActionRejected(
            ErrorKind.INVALID_ACTION_PHASE,
            f"Cannot {verb} during {snapshot.phase.value}",
        )


def _require_turn(snapshot: GameSnapshot, player_id: str) -> PlayerState:
    current = snapshot.player_at_seat(snapshot.current_turn)
    if current is None or current.id != player_id:
        raise ActionRejected(ErrorKind.NOT_YOUR_TURN, "It is not your turn to act")
    return current


def _require_funds(player: PlayerState, amount: int, what: str) -> None:
    if player.chip_count < amount:
        raise ActionRejected(ErrorKind.INSUFFICIENT_FUNDS, f"Not enough chips to {what}")


def _pay(
    snapshot: GameSnapshot,
    player: PlayerState,
    delta: int,
    contribution: int,
) -> tuple[tuple[PlayerState, ...], int]:
    players = _update_player(
        snapshot.players,
        player.id,
        chip_count=player.chip_count - delta,
        current_bet=contribution,
    )
    return players, snapshot.pot_size + delta


def _finish_turn(snapshot: GameSnapshot) -> GameSnapshot:
    """Hand the turn to the next seat and close the round when it is settled."""
    moved = snapshot.model_copy(
        update={"current_turn": seat_after(snapshot.players, snapshot.current_turn)},
    )
    if is_round_complete(moved):
        return _advance_phase(moved)
    return moved


def _advance_phase(snapshot: GameSnapshot) -> GameSnapshot:
    next_phase = _NEXT_PHASE.get(snapshot.phase)
    if next_phase is None:
        return snapshot

    advanced = snapshot.model_copy(
        update={
            "phase": next_phase,
            "highest_bet": 0,
            "min_raise": snapshot.big_blind,
            "players": tuple(p.model_copy(update={"current_bet": 0}) for p in snapshot.players),
        },
    )
    if next_phase is Phase.SHOWDOWN:
        return advanced.model_copy(update={"current_turn": None})

    advanced = advanced.model_copy(update={"current_turn": first_to_act_seat(advanced)})
    if sum(1 for p in advanced.players if p.can_act) <= 1:
        # everyone else is all-in: no more betting, run the board out
        return _advance_phase(advanced)
    return advanced


def _award_pot(
    snapshot: GameSnapshot,
    winner: PlayerState,
    now: datetime,
    declared_by: str | None = None,
) -> GameSnapshot:
    pot = snapshot.pot_size
    players = _update_player(snapshot.players, winner.id, chip_count=winner.chip_count + pot)
    record = _record(
        snapshot,
        ActionType.WIN,
        now,
        player_id=declared_by,
        target_player_id=winner.id,
        amount=pot,
    )
    update: dict[str, Any] = {
        "players": players,
        "pot_size": 0,
        "current_turn": None,
        "highest_bet": 0,
        "min_raise": snapshot.big_blind,
    }
    if sum(1 for p in players if p.chip_count > 0) <= 1:
        update["phase"] = Phase.GAMEOVER
        update["dealer_seat"] = None
    else:
        update["phase"] = Phase.HAND_OVER
    return _with_record(snapshot, record, **update)


# -- betting ------------------------------------------------------------------


def _fold(snapshot: GameSnapshot, action: FoldAction, now: datetime) -> GameSnapshot:
    _require_betting_phase(snapshot, "fold")
    player_id = _require_player_id(action.player_id, "fold")
    _require_turn(snapshot, player_id)

    record = _record(snapshot, ActionType.FOLD, now, player_id=player_id)
    folded = _with_record(
        snapshot,
        record,
        players=_update_player(snapshot.players, player_id, has_folded=True),
    )

    contenders = [p for p in folded.players if p.in_hand]
    if len(contenders) == 1:
        return _award_pot(folded, contenders[0], now)
    return _finish_turn(folded)


def _check(snapshot: GameSnapshot, action: CheckAction, now: datetime) -> GameSnapshot:
    _require_betting_phase(snapshot, "check")
    player_id = _require_player_id(action.player_id, "check")
    player = _require_turn(snapshot, player_id)

    if snapshot.highest_bet > 0 and player.current_bet < snapshot.highest_bet:
        raise ActionRejected(ErrorKind.INVALID_ACTION, "Cannot check when there is an active bet")

    record = _record(snapshot, ActionType.CHECK, now, player_id=player_id)
    return _finish_turn(_with_record(snapshot, record))


def _call(snapshot: GameSnapshot, action: CallAction, now: datetime) -> GameSnapshot:
    _require_betting_phase(snapshot, "call")
    player_id = _require_player_id(action.player_id, "call")
    player = _require_turn(snapshot, player_id)

    amount_to_call = max(snapshot.highest_bet - player.current_bet, 0)
    _require_funds(player, amount_to_call, "call")

    players, pot = _pay(snapshot, player, amount_to_call, snapshot.highest_bet)
    record = _record(snapshot, ActionType.CALL, now, player_id=player_id, amount=amount_to_call)
    return _finish_turn(_with_record(snapshot, record, players=players, pot_size=pot))


def _bet_or_raise(
    snapshot: GameSnapshot,
    action: BetAction | RaiseAction,
    now: datetime,
) -> GameSnapshot:
    verb = "bet" if isinstance(action, BetAction) else "raise"
    _require_betting_phase(snapshot, verb)
    if not action.player_id or action.amount is None:
        raise ActionRejected(
            ErrorKind.INVALID_ACTION,
            "Player ID and amount are required for raise/bet action",
        )
    player = _require_turn(snapshot, action.player_id)

    minimum = snapshot.highest_bet + snapshot.min_raise
    if action.amount < minimum:
        raise ActionRejected(
            ErrorKind.INVALID_BET_AMOUNT,
            f"Raise must be at least {snapshot.min_raise} more than current bet",
        )
    delta = action.amount - player.current_bet
    _require_funds(player, delta, verb)

    players, pot = _pay(snapshot, player, delta, action.amount)
    record = _record(
        snapshot,
        ActionType(action.type),
        now,
        player_id=player.id,
        amount=action.amount,
    )
    raised = _with_record(
        snapshot,
        record,
        players=players,
        pot_size=pot,
        highest_bet=action.amount,
        min_raise=action.amount - snapshot.highest_bet,
    )
    return _finish_turn(raised)


# -- blinds -------------------------------------------------------------------


def _require_blind_phase(snapshot: GameSnapshot, label: str) -> None:
    if snapshot.phase not in (Phase.SETUP, Phase.PREFLOP):
        raise ActionRejected(
            ErrorKind.INVALID_ACTION_PHASE,
            f"Cannot post the {label} during {snapshot.phase.value}",
        )


def _require_not_posted(snapshot: GameSnapshot, blind_type: ActionType, label: str) -> None:
    if any(r.type is blind_type for r in current_hand_actions(snapshot.actions)):
        raise ActionRejected(ErrorKind.INVALID_ACTION, f"The {label} has already been posted")


def _small_blind(snapshot: GameSnapshot, action: SmallBlindAction, now: datetime) -> GameSnapshot:
    player_id = _require_player_id(action.player_id, "small blind")
    _require_blind_phase(snapshot, "small blind")

    sb_seat = small_blind_seat(snapshot)
    poster = snapshot.player_at_seat(sb_seat)
    if poster is None or poster.id != player_id:
        raise ActionRejected(
            ErrorKind.INVALID_ACTION,
            "Only the small blind position can post the small blind",
        )
    _require_not_posted(snapshot, ActionType.SMALL_BLIND, "small blind")
    _require_funds(poster, snapshot.small_blind, "post small blind")

    bb_seat = big_blind_seat(snapshot, sb_seat)
    if bb_seat is None:
        raise ActionRejected(
            ErrorKind.INTERNAL_ERROR,
            "Could not determine Big Blind seat after Small Blind posted.",
        )

    players, pot = _pay(snapshot, poster, snapshot.small_blind, snapshot.small_blind)
    record = _record(
        snapshot,
        ActionType.SMALL_BLIND,
        now,
        player_id=player_id,
        amount=snapshot.small_blind,
    )
    return _with_record(
        snapshot,
        record,
        players=players,
        pot_size=pot,
        highest_bet=snapshot.small_blind,
        current_turn=bb_seat,
    )


def _big_blind(snapshot: GameSnapshot, action: BigBlindAction, now: datetime) -> GameSnapshot:
    player_id = _require_player_id(action.player_id, "big blind")
    _require_blind_phase(snapshot, "big blind")

    bb_seat = big_blind_seat(snapshot, small_blind_seat(snapshot))
    poster = snapshot.player_at_seat(bb_seat)
    if poster is None or poster.id != player_id:
        raise ActionRejected(
            ErrorKind.INVALID_ACTION,
            "Only the big blind position can post the big blind",
        )
    _require_not_posted(snapshot, ActionType.BIG_BLIND, "big blind")
    _require_funds(poster, snapshot.big_blind, "post big blind")

    players, pot = _pay(snapshot, poster, snapshot.big_blind, snapshot.big_blind)
    record = _record(
        snapshot,
        ActionType.BIG_BLIND,
        now,
        player_id=player_id,
        amount=snapshot.big_blind,
    )
    posted = _with_record(
        snapshot,
        record,
        players=players,
        pot_size=pot,
        highest_bet=snapshot.big_blind,
        min_raise=snapshot.big_blind,
        phase=Phase.PREFLOP,
    )
    posted = posted.model_copy(update={"current_turn": first_to_act_seat(posted)})
    if is_round_complete(posted):
        # blinds put everyone but one player all-in
        return _advance_phase(posted)
    return posted


# -- seating and settlement ---------------------------------------------------


def _sit_out(snapshot: GameSnapshot, action: SitOutAction, now: datetime) -> GameSnapshot:
    player_id = _require_player_id(action.player_id, "sit out")
    player = snapshot.player_by_id(player_id)
    if player is None:
        raise ActionRejected(ErrorKind.PLAYER_NOT_FOUND, "Player not found")

    players = _update_player(snapshot.players, player_id, is_sitting_out=True)
    current_turn = snapshot.current_turn
    if player.seat == snapshot.current_turn:
        current_turn = seat_after(players, snapshot.current_turn)

    record = _record(snapshot, ActionType.SIT_OUT, now, player_id=player_id)
    return _with_record(snapshot, record, players=players, current_turn=current_turn)


def _sit_in(snapshot: GameSnapshot, action: SitInAction, now: datetime) -> GameSnapshot:
    player_id = _require_player_id(action.player_id, "sit in")
    if snapshot.player_by_id(player_id) is None:
        raise ActionRejected(ErrorKind.PLAYER_NOT_FOUND, "Player not found")

    players = _update_player(snapshot.players, player_id, is_sitting_out=False)
    record = _record(snapshot, ActionType.SIT_IN, now, player_id=player_id)
    return _with_record(snapshot, record, players=players)


def _win(snapshot: GameSnapshot, action: WinAction, now: datetime) -> GameSnapshot:
    if not action.target_player_id:
        raise ActionRejected(
            ErrorKind.INVALID_ACTION,
            "Target player ID is required for win action",
        )
    winner = snapshot.player_by_id(action.target_player_id)
    if winner is None:
        raise ActionRejected(ErrorKind.PLAYER_NOT_FOUND, "Winning player not found")
    return _award_pot(snapshot, winner, now, declared_by=action.player_id)


# -- hand reset ---------------------------------------------------------------


def _reset_for_next_hand(snapshot: GameSnapshot) -> GameSnapshot:
    players = tuple(
        p.model_copy(
            update={
                "current_bet": 0,
                "has_folded": False,
                "is_active": p.chip_count > 0 and not p.is_sitting_out,
            },
        )
        for p in snapshot.players
    )
    if sum(1 for p in players if p.is_active) < 2:
        raise ActionRejected(
            ErrorKind.NOT_ENOUGH_PLAYERS,
            "Not enough active players to start a new hand.",
        )

    dealer_seat = seat_after(players, snapshot.dealer_seat)
    if dealer_seat is None:
        raise ActionRejected(ErrorKind.INTERNAL_ERROR, "Could not determine next dealer.")

    staged = snapshot.model_copy(update={"players": players, "dealer_seat": dealer_seat})
    sb_seat = small_blind_seat(staged)
    bb_seat = big_blind_seat(staged, sb_seat)
    if sb_seat is None or bb_seat is None:
        raise ActionRejected(
            ErrorKind.INTERNAL_ERROR,
            "Could not determine blind positions for the new hand.",
        )

    return staged.model_copy(
        update={
            "phase": Phase.SETUP,
            "pot_size": 0,
            "current_turn": sb_seat,
            "highest_bet": 0,
            "min_raise": snapshot.big_blind,
            "last_action": None,
        },
    )
