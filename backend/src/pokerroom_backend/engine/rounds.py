from __future__ import annotations

from collections.abc import Sequence

from pokerroom_backend.engine.models import ActionRecord, ActionType, GameSnapshot, Phase
from pokerroom_backend.engine.positions import (
    big_blind_seat,
    first_to_act_seat,
    seat_after,
    small_blind_seat,
)


_AGGRESSIVE = (ActionType.BET, ActionType.RAISE)


def current_hand_actions(actions: Sequence[ActionRecord]) -> tuple[ActionRecord, ...]:
    """Actions recorded since the most recent WIN.

    The history is append-only and spans every hand played at the table; the
    WIN record is the boundary between one hand and the next.
    """
    for index in range(len(actions) - 1, -1, -1):
        if actions[index].type is ActionType.WIN:
            return tuple(actions[index + 1 :])
    return tuple(actions)


def last_aggressor_seat(snapshot: GameSnapshot) -> int | None:
    for record in reversed(current_hand_actions(snapshot.actions)):
        if record.type in _AGGRESSIVE:
            aggressor = snapshot.player_by_id(record.player_id)
            if aggressor is not None:
                return aggressor.seat
    return None


def is_round_complete(snapshot: GameSnapshot) -> bool:
    contenders = [p for p in snapshot.players if p.in_hand]
    if len(contenders) <= 1:
        return True

    hand_actions = current_hand_actions(snapshot.actions)
    if snapshot.phase is not Phase.PREFLOP and not hand_actions:
        return False

    highest_bet = snapshot.highest_bet
    can_act = [p for p in contenders if p.can_act]
    if not can_act:
        return True
    if len(can_act) == 1 and can_act[0].current_bet >= highest_bet:
        return True

    # all-in contenders cannot add chips, so they never block the round
    all_bets_match = all(
        p.current_bet == highest_bet or p.chip_count == 0 for p in contenders
    )
    if not all_bets_match:
        return False

    aggressor_seat = last_aggressor_seat(snapshot)
    if (
        snapshot.phase is Phase.PREFLOP
        and aggressor_seat is None
        and highest_bet == snapshot.big_blind
    ):
        # the big blind keeps the option to raise after everyone limps in
        bb_seat = big_blind_seat(snapshot, small_blind_seat(snapshot))
        return snapshot.current_turn == seat_after(snapshot.players, bb_seat)

    if aggressor_seat is not None and highest_bet > 0:
        # closes one seat past the last bettor; an all-in bettor is skipped
        return snapshot.current_turn == seat_after(snapshot.players, aggressor_seat)

    return snapshot.current_turn == first_to_act_seat(snapshot)
