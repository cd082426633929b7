from __future__ import annotations

from typing import Any

from pokerroom_backend.engine.actions import apply_action, reset_for_next_hand
from pokerroom_backend.engine.models import (
    ActionType,
    BetAction,
    CallAction,
    CheckAction,
    ErrorKind,
    FoldAction,
    GameSnapshot,
    Phase,
    RaiseAction,
    SitInAction,
    SitOutAction,
    WinAction,
)

from .test_utils import apply_ok, apply_rejected, make_player, make_snapshot, post_blinds


def _preflop(seats: tuple[int, ...] = (0, 1, 2), **kwargs: Any) -> GameSnapshot:
    return post_blinds(make_snapshot(seats, dealer_seat=0, **kwargs))


def test_three_handed_preflop_to_flop() -> None:
    snapshot = make_snapshot((0, 1, 2), dealer_seat=0)

    snapshot = apply_ok(snapshot, {"type": "SMALL_BLIND", "player_id": "p1"})
    assert snapshot.pot_size == 5
    assert snapshot.current_turn == 2

    snapshot = apply_ok(snapshot, {"type": "BIG_BLIND", "player_id": "p2"})
    assert snapshot.pot_size == 15
    assert snapshot.highest_bet == 10
    assert snapshot.min_raise == 10
    assert snapshot.current_turn == 0
    assert snapshot.phase is Phase.PREFLOP

    snapshot = apply_ok(snapshot, CallAction(player_id="p0"))
    assert snapshot.player_by_id("p0").chip_count == 990
    assert snapshot.pot_size == 25
    assert snapshot.current_turn == 1

    snapshot = apply_ok(snapshot, CallAction(player_id="p1"))
    assert snapshot.player_by_id("p1").chip_count == 995
    assert snapshot.pot_size == 30
    assert snapshot.current_turn == 2

    snapshot = apply_ok(snapshot, CheckAction(player_id="p2"))
    assert snapshot.phase is Phase.FLOP
    assert snapshot.highest_bet == 0
    assert all(p.current_bet == 0 for p in snapshot.players)
    assert snapshot.current_turn == 1
    assert snapshot.pot_size == 30


def test_checking_through_every_street_reaches_showdown() -> None:
    snapshot = _preflop()
    for player_id in ("p0", "p1"):
        snapshot = apply_ok(snapshot, CallAction(player_id=player_id))
    snapshot = apply_ok(snapshot, CheckAction(player_id="p2"))

    for phase in (Phase.FLOP, Phase.TURN, Phase.RIVER):
        assert snapshot.phase is phase
        for player_id in ("p1", "p2", "p0"):
            snapshot = apply_ok(snapshot, CheckAction(player_id=player_id))

    assert snapshot.phase is Phase.SHOWDOWN
    assert snapshot.current_turn is None
    assert snapshot.pot_size == 30


def test_heads_up_big_blind_keeps_the_option() -> None:
    snapshot = make_snapshot((0, 1), dealer_seat=0)
    snapshot = apply_ok(snapshot, {"type": "SMALL_BLIND", "player_id": "p0"})
    snapshot = apply_ok(snapshot, {"type": "BIG_BLIND", "player_id": "p1"})
    assert snapshot.current_turn == 0

    snapshot = apply_ok(snapshot, CallAction(player_id="p0"))
    assert snapshot.phase is Phase.PREFLOP
    assert snapshot.current_turn == 1

    snapshot = apply_ok(snapshot, CheckAction(player_id="p1"))
    assert snapshot.phase is Phase.FLOP
    assert snapshot.current_turn == 1
    assert snapshot.pot_size == 20


def test_big_blind_can_raise_its_option() -> None:
    snapshot = make_snapshot((0, 1), dealer_seat=0)
    snapshot = post_blinds(snapshot)
    snapshot = apply_ok(snapshot, CallAction(player_id="p0"))

    snapshot = apply_ok(snapshot, RaiseAction(player_id="p1", amount=30))
    assert snapshot.phase is Phase.PREFLOP
    assert snapshot.current_turn == 0
    assert snapshot.highest_bet == 30
    assert snapshot.min_raise == 20


def test_fold_out_awards_pot_automatically() -> None:
    snapshot = _preflop()

    snapshot = apply_ok(snapshot, FoldAction(player_id="p0"))
    snapshot = apply_ok(snapshot, FoldAction(player_id="p1"))

    assert snapshot.phase is Phase.HAND_OVER
    assert snapshot.pot_size == 0
    assert snapshot.current_turn is None
    assert snapshot.player_by_id("p2").chip_count == 1_005
    win = snapshot.last_action
    assert win is not None
    assert win.type is ActionType.WIN
    assert win.target_player_id == "p2"
    assert win.player_id is None
    assert win.amount == 15
    assert [r.type for r in snapshot.actions][-2:] == [ActionType.FOLD, ActionType.WIN]


def test_last_stack_standing_ends_the_game() -> None:
    snapshot = make_snapshot((0, 1), chips={0: 10, 1: 500}, dealer_seat=0)
    snapshot = post_blinds(snapshot)
    # the short stack calls all-in and the board runs out
    snapshot = apply_ok(snapshot, CallAction(player_id="p0"))
    assert snapshot.player_by_id("p0").chip_count == 0
    assert snapshot.phase is Phase.SHOWDOWN

    snapshot = apply_ok(snapshot, WinAction(target_player_id="p1"))
    assert snapshot.phase is Phase.GAMEOVER
    assert snapshot.dealer_seat is None
    assert snapshot.player_by_id("p1").chip_count == 510


def test_acting_out_of_turn_is_rejected() -> None:
    snapshot = _preflop()

    result = apply_rejected(snapshot, CallAction(player_id="p1"), ErrorKind.NOT_YOUR_TURN)
    assert result.error.message == "It is not your turn to act"


def test_unknown_player_is_not_their_turn() -> None:
    apply_rejected(_preflop(), FoldAction(player_id="ghost"), ErrorKind.NOT_YOUR_TURN)


def test_missing_player_id_is_invalid() -> None:
    apply_rejected(_preflop(), FoldAction(), ErrorKind.INVALID_ACTION)
    apply_rejected(_preflop(), {"type": "CALL"}, ErrorKind.INVALID_ACTION)


def test_unknown_action_type_is_rejected() -> None:
    result = apply_rejected(_preflop(), {"type": "SHOVE", "player_id": "p0"}, ErrorKind.INVALID_ACTION)
    assert "SHOVE" in result.error.message


def test_call_without_enough_chips_is_rejected_not_clamped() -> None:
    snapshot = _preflop(chips={0: 5, 1: 1_000, 2: 1_000})

    apply_rejected(snapshot, CallAction(player_id="p0"), ErrorKind.INSUFFICIENT_FUNDS)
    assert snapshot.player_by_id("p0").chip_count == 5


def test_raise_below_minimum_is_rejected() -> None:
    snapshot = _preflop()

    result = apply_rejected(
        snapshot,
        RaiseAction(player_id="p0", amount=15),
        ErrorKind.INVALID_BET_AMOUNT,
    )
    assert result.error.message == "Raise must be at least 10 more than current bet"


def test_raise_moves_chips_and_reopens_action() -> None:
    snapshot = _preflop()

    snapshot = apply_ok(snapshot, RaiseAction(player_id="p0", amount=30))
    assert snapshot.player_by_id("p0").chip_count == 970
    assert snapshot.player_by_id("p0").current_bet == 30
    assert snapshot.pot_size == 45
    assert snapshot.highest_bet == 30
    assert snapshot.min_raise == 20
    assert snapshot.current_turn == 1

    apply_rejected(snapshot, RaiseAction(player_id="p1", amount=45), ErrorKind.INVALID_BET_AMOUNT)
    snapshot = apply_ok(snapshot, RaiseAction(player_id="p1", amount=50))
    assert snapshot.player_by_id("p1").chip_count == 950


def test_raise_beyond_stack_is_rejected() -> None:
    snapshot = _preflop()

    apply_rejected(
        snapshot,
        RaiseAction(player_id="p0", amount=1_001),
        ErrorKind.INSUFFICIENT_FUNDS,
    )


def test_bet_amount_is_required() -> None:
    snapshot = _preflop()

    apply_rejected(snapshot, RaiseAction(player_id="p0"), ErrorKind.INVALID_ACTION)


def test_check_facing_a_bet_is_rejected() -> None:
    apply_rejected(_preflop(), CheckAction(player_id="p0"), ErrorKind.INVALID_ACTION)


def test_postflop_bettor_checks_once_more_before_the_street_closes() -> None:
    snapshot = _preflop()
    snapshot = apply_ok(snapshot, CallAction(player_id="p0"))
    snapshot = apply_ok(snapshot, CallAction(player_id="p1"))
    snapshot = apply_ok(snapshot, CheckAction(player_id="p2"))

    snapshot = apply_ok(snapshot, BetAction(player_id="p1", amount=20))
    assert snapshot.highest_bet == 20
    snapshot = apply_ok(snapshot, CallAction(player_id="p2"))
    snapshot = apply_ok(snapshot, CallAction(player_id="p0"))
    assert snapshot.phase is Phase.FLOP
    assert snapshot.current_turn == 1

    apply_rejected(snapshot, CallAction(player_id="p2"), ErrorKind.NOT_YOUR_TURN)
    snapshot = apply_ok(snapshot, CheckAction(player_id="p1"))

    assert snapshot.phase is Phase.TURN
    assert snapshot.pot_size == 90
    assert snapshot.current_turn == 1


def test_betting_actions_outside_betting_phases() -> None:
    setup = make_snapshot(dealer_seat=0, current_turn=1)
    apply_rejected(setup, FoldAction(player_id="p1"), ErrorKind.INVALID_ACTION_PHASE)

    showdown = make_snapshot(phase=Phase.SHOWDOWN, pot_size=30)
    result = apply_rejected(showdown, CheckAction(player_id="p1"), ErrorKind.INVALID_ACTION_PHASE)
    assert result.error.message == "Cannot check during Showdown"


def test_blinds_must_come_from_the_right_seat() -> None:
    snapshot = make_snapshot((0, 1, 2), dealer_seat=0)

    apply_rejected(snapshot, {"type": "SMALL_BLIND", "player_id": "p2"}, ErrorKind.INVALID_ACTION)
    apply_rejected(snapshot, {"type": "BIG_BLIND", "player_id": "p1"}, ErrorKind.INVALID_ACTION)

    posted = apply_ok(snapshot, {"type": "SMALL_BLIND", "player_id": "p1"})
    apply_rejected(posted, {"type": "SMALL_BLIND", "player_id": "p1"}, ErrorKind.INVALID_ACTION)


def test_blind_without_enough_chips_is_rejected() -> None:
    snapshot = make_snapshot((0, 1, 2), chips={0: 1_000, 1: 3, 2: 1_000}, dealer_seat=0)

    apply_rejected(snapshot, {"type": "SMALL_BLIND", "player_id": "p1"}, ErrorKind.INSUFFICIENT_FUNDS)


def test_all_in_blinds_run_the_board_out() -> None:
    snapshot = make_snapshot((0, 1), chips={0: 5, 1: 10}, dealer_seat=0)

    snapshot = post_blinds(snapshot)

    assert snapshot.phase is Phase.SHOWDOWN
    assert snapshot.pot_size == 15
    assert snapshot.current_turn is None


def test_sit_out_on_turn_passes_the_action() -> None:
    snapshot = _preflop()

    snapshot = apply_ok(snapshot, SitOutAction(player_id="p0"))
    assert snapshot.player_by_id("p0").is_sitting_out
    assert snapshot.current_turn == 1

    snapshot = apply_ok(snapshot, SitInAction(player_id="p0"))
    assert not snapshot.player_by_id("p0").is_sitting_out
    assert snapshot.current_turn == 1


def test_sit_out_unknown_player() -> None:
    apply_rejected(_preflop(), SitOutAction(player_id="ghost"), ErrorKind.PLAYER_NOT_FOUND)


def test_win_requires_a_known_target() -> None:
    showdown = make_snapshot(phase=Phase.SHOWDOWN, pot_size=30)

    apply_rejected(showdown, WinAction(), ErrorKind.INVALID_ACTION)
    apply_rejected(showdown, WinAction(target_player_id="ghost"), ErrorKind.PLAYER_NOT_FOUND)


def test_win_records_the_declaring_player() -> None:
    showdown = make_snapshot(phase=Phase.SHOWDOWN, pot_size=30)

    snapshot = apply_ok(showdown, WinAction(target_player_id="p2", player_id="p0"))
    assert snapshot.last_action.player_id == "p0"
    assert snapshot.last_action.target_player_id == "p2"
    assert snapshot.player_by_id("p2").chip_count == 1_030
    assert snapshot.phase is Phase.HAND_OVER
    assert snapshot.min_raise == snapshot.big_blind


def test_rejection_leaves_input_snapshot_untouched() -> None:
    snapshot = _preflop()
    before = snapshot.model_dump()

    apply_action(snapshot, RaiseAction(player_id="p0", amount=5))
    apply_action(snapshot, CallAction(player_id="p2"))

    assert snapshot.model_dump() == before


def test_history_is_append_only() -> None:
    snapshot = _preflop()
    prefix = snapshot.actions

    snapshot = apply_ok(snapshot, CallAction(player_id="p0"))

    assert snapshot.actions[: len(prefix)] == prefix
    assert len(snapshot.actions) == len(prefix) + 1
    assert snapshot.actions[-1].seq == len(snapshot.actions)
    assert snapshot.last_action == snapshot.actions[-1]


def test_reset_rotates_dealer_and_waits_for_blinds() -> None:
    players = (
        make_player(0, chips=1_005),
        make_player(1, chips=995, has_folded=True, current_bet=5),
        make_player(2, chips=0, is_sitting_out=False),
        make_player(3, chips=1_000),
    )
    snapshot = make_snapshot(dealer_seat=0, players=players, phase=Phase.HAND_OVER)

    result = reset_for_next_hand(snapshot)
    assert result.accepted
    reset = result.snapshot
    assert reset.phase is Phase.SETUP
    assert reset.dealer_seat == 1
    assert reset.current_turn == 3
    assert reset.pot_size == 0
    assert reset.highest_bet == 0
    assert reset.last_action is None
    assert not reset.player_by_id("p2").is_active
    assert all(not p.has_folded and p.current_bet == 0 for p in reset.players)


def test_reset_needs_two_funded_players() -> None:
    players = (make_player(0, chips=2_000), make_player(1, chips=0))
    snapshot = make_snapshot(dealer_seat=0, players=players, phase=Phase.HAND_OVER)

    result = reset_for_next_hand(snapshot)
    assert result.accepted is False
    assert result.error.code is ErrorKind.NOT_ENOUGH_PLAYERS
