from __future__ import annotations

from collections.abc import Iterable

from pokerroom_backend.engine.models import GameSnapshot, Phase, PlayerState


# Pure seat arithmetic. Turn rotation only visits players that can act; blind
# positions use the seated players dealt into the hand so they stay put when a
# blind poster ends up all-in.


def _rotation_seats(players: Iterable[PlayerState]) -> list[int]:
    return sorted(p.seat for p in players if p.can_act)


def _seated_players(players: Iterable[PlayerState]) -> list[PlayerState]:
    return [p for p in players if p.is_active and not p.is_sitting_out]


def next_active_seat(players: Iterable[PlayerState], from_seat: int | None) -> int | None:
    seats = _rotation_seats(players)
    if not seats:
        return None
    if from_seat is None or from_seat not in seats:
        return seats[0]
    return seats[(seats.index(from_seat) + 1) % len(seats)]


def seat_after(players: Iterable[PlayerState], from_seat: int | None) -> int | None:
    """Clockwise successor of ``from_seat`` among players that can act.

    Unlike :func:`next_active_seat` the starting seat does not need to be in the
    rotation, so the turn keeps moving clockwise after the actor folds, sits
    out or goes all-in.
    """
    seats = _rotation_seats(players)
    if not seats:
        return None
    if from_seat is None:
        return seats[0]
    for seat in seats:
        if seat > from_seat:
            return seat
    return seats[0]


def is_heads_up(players: Iterable[PlayerState]) -> bool:
    return len(_seated_players(players)) == 2


def _seated_after(players: list[PlayerState], from_seat: int) -> int | None:
    seats = sorted(p.seat for p in players)
    if not seats:
        return None
    for seat in seats:
        if seat > from_seat:
            return seat
    return seats[0]


def small_blind_seat(snapshot: GameSnapshot) -> int | None:
    if snapshot.dealer_seat is None:
        return None
    if is_heads_up(snapshot.players):
        return snapshot.dealer_seat
    return _seated_after(_seated_players(snapshot.players), snapshot.dealer_seat)


def big_blind_seat(snapshot: GameSnapshot, sb_seat: int | None) -> int | None:
    if sb_seat is None:
        return None
    return _seated_after(_seated_players(snapshot.players), sb_seat)


def first_to_act_seat(snapshot: GameSnapshot) -> int | None:
    if snapshot.dealer_seat is None:
        return None
    if not _seated_players(snapshot.players):
        return None

    if snapshot.phase in (Phase.SETUP, Phase.PREFLOP):
        bb_seat = big_blind_seat(snapshot, small_blind_seat(snapshot))
        if bb_seat is not None:
            return seat_after(snapshot.players, bb_seat)
    return seat_after(snapshot.players, snapshot.dealer_seat)
