from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from collections.abc import Callable, Mapping
from datetime import datetime, timedelta, timezone
from typing import Any

from pokerroom_backend.config import Settings
from pokerroom_backend.engine.actions import apply_action
from pokerroom_backend.engine.allowed import allowed_actions
from pokerroom_backend.engine.internal import TableRuntime
from pokerroom_backend.engine.lifecycle import (
    pending_blind,
    resolve_showdown,
    restart_game,
    start_game,
    start_next_hand,
)
from pokerroom_backend.engine.models import (
    BETTING_PHASES,
    PLAYER_ACTION_ADAPTER,
    ActionResult,
    EngineError,
    ErrorKind,
    GameSnapshot,
    JoinResult,
    Phase,
    PlayerAction,
    PlayerSession,
    PlayerState,
    SubmitActionResponse,
    TableConfig,
    TableEvent,
    ViewState,
    WinAction,
)
from pokerroom_backend.engine.positions import big_blind_seat, small_blind_seat
from pokerroom_backend.repo.base import TableRepository
from pokerroom_backend.utils.codes import generate_room_code, new_entity_id, new_session_token
from pokerroom_backend.utils.hashing import model_hash


logger = logging.getLogger(__name__)

_ROOM_CODE_ATTEMPTS = 20

# pushed to subscribers when their table is deleted
TABLE_CLOSED = None


class TableRejected(Exception):
    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind
        self.message = message


class TableService:
    def __init__(
        self,
        repository: TableRepository,
        settings: Settings | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._repo = repository
        self._settings = settings or Settings()
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._subscriptions: dict[str, set[asyncio.Queue[TableEvent | None]]] = defaultdict(set)

    # -- tables -----------------------------------------------------------------

    async def create_table(self, config: TableConfig | None = None) -> ViewState:
        config = config or self._settings.table_defaults()
        if config.small_blind > config.big_blind:
            raise TableRejected(ErrorKind.INVALID_ACTION, "Small blind cannot exceed the big blind")

        room_code = self._claim_room_code(config.room_code)
        table_id = new_entity_id("tbl")
        snapshot = GameSnapshot(
            id=table_id,
            room_code=room_code,
            small_blind=config.small_blind,
            big_blind=config.big_blind,
            min_raise=config.big_blind,
        )
        table = TableRuntime(table_id=table_id, config=config, snapshot=snapshot)
        self._repo.create(table)
        logger.info(
            "created table %s (room %s, blinds %s/%s)",
            table_id,
            room_code,
            config.small_blind,
            config.big_blind,
        )
        return self._build_view_state(table, None)

    async def get_table(self, table_id: str, viewer_id: str | None = None) -> ViewState:
        table = self._get(table_id)
        async with table.lock:
            return self._build_view_state(table, viewer_id)

    async def get_table_by_room_code(
        self,
        room_code: str,
        viewer_id: str | None = None,
    ) -> ViewState:
        table = self._get_by_room_code(room_code)
        async with table.lock:
            return self._build_view_state(table, viewer_id)

    async def get_view(self, table_id: str, token: str) -> ViewState:
        session = self.authenticate(token, table_id)
        return await self.get_table(table_id, session.player_id)

    # -- seating ----------------------------------------------------------------

    async def join_table(self, room_code: str, name: str, seat: int) -> JoinResult:
        table = self._get_by_room_code(room_code)
        name = name.strip()
        if not name:
            raise TableRejected(ErrorKind.INVALID_ACTION, "Player name is required")

        async with table.lock:
            snapshot = table.snapshot
            if len(snapshot.players) >= table.config.max_players:
                raise TableRejected(ErrorKind.GAME_FULL, "Game is full")
            if not 1 <= seat <= table.config.max_players:
                raise TableRejected(
                    ErrorKind.INVALID_SEAT,
                    f"Seat must be between 1 and {table.config.max_players}",
                )
            if snapshot.player_at_seat(seat) is not None:
                raise TableRejected(ErrorKind.SEAT_TAKEN, f"Seat {seat} is already taken")
            if any(p.name.lower() == name.lower() for p in snapshot.players):
                raise TableRejected(
                    ErrorKind.DUPLICATE_NAME,
                    f"A player named {name!r} is already at this table",
                )

            player = PlayerState(
                id=new_entity_id("ply"),
                name=name,
                seat=seat,
                chip_count=table.config.starting_stack,
                # dealt in from the next hand reset when a game is running
                is_active=snapshot.dealer_seat is None,
            )
            players = tuple(sorted(snapshot.players + (player,), key=lambda p: p.seat))
            update: dict[str, Any] = {"players": players}
            if snapshot.creator_id is None:
                update["creator_id"] = player.id
            self._commit(table, snapshot.model_copy(update=update))

            session = self._issue_session(table.table_id, player.id)
            logger.info("player %s (%s) took seat %s at %s", player.id, name, seat, table.table_id)
            return JoinResult(
                player_id=player.id,
                token=session.token,
                view_state=self._build_view_state(table, player.id),
            )

    async def leave_table(self, table_id: str, token: str) -> ViewState | None:
        """Remove the caller from the table; ``None`` once the table is gone."""
        session = self.authenticate(token, table_id)
        table = self._get(table_id)
        async with table.lock:
            snapshot = table.snapshot
            player = snapshot.player_by_id(session.player_id)
            if player is None:
                raise TableRejected(ErrorKind.PLAYER_NOT_FOUND, "Player not found")
            if _hand_running(snapshot) and player.is_active:
                raise TableRejected(
                    ErrorKind.INVALID_ACTION_PHASE,
                    "Cannot leave while dealt into a running hand",
                )

            remaining = tuple(p for p in snapshot.players if p.id != player.id)
            self._repo.delete_sessions(player.id)
            if not remaining:
                self._repo.delete(table_id)
                self._close_subscriptions(table_id)
                logger.info("last player left; deleted table %s", table_id)
                return None

            update: dict[str, Any] = {"players": remaining}
            if snapshot.creator_id == player.id:
                update["creator_id"] = remaining[0].id
            self._commit(table, snapshot.model_copy(update=update))
            logger.info("player %s left table %s", player.id, table_id)
            return self._build_view_state(table, None)

    # -- play -------------------------------------------------------------------

    async def submit_action(
        self,
        table_id: str,
        token: str,
        action: PlayerAction | Mapping[str, Any],
        expected_version: int | None = None,
    ) -> SubmitActionResponse:
        session = self.authenticate(token, table_id)
        table = self._get(table_id)
        async with table.lock:
            self._check_version(table, expected_version)
            if _is_win(action):
                result = ActionResult(
                    accepted=False,
                    error=EngineError(
                        code=ErrorKind.INVALID_ACTION,
                        message="The winner is declared at showdown, not as a player action",
                    ),
                )
            else:
                action = _attributed(action, session.player_id)
                result = apply_action(table.snapshot, action, now=self._clock())
            return self._settle(table, result, session.player_id)

    async def start_game(self, table_id: str, token: str) -> SubmitActionResponse:
        session = self.authenticate(token, table_id)
        table = self._get(table_id)
        async with table.lock:
            response = self._settle(table, start_game(table.snapshot), session.player_id)
            if response.accepted:
                logger.info(
                    "game started at %s, dealer seat %s",
                    table_id,
                    table.snapshot.dealer_seat,
                )
            return response

    async def start_next_hand(self, table_id: str, token: str) -> SubmitActionResponse:
        session = self.authenticate(token, table_id)
        table = self._get(table_id)
        async with table.lock:
            return self._settle(table, start_next_hand(table.snapshot), session.player_id)

    async def declare_winner(
        self,
        table_id: str,
        token: str,
        winner_id: str,
        expected_version: int | None = None,
    ) -> SubmitActionResponse:
        session = self.authenticate(token, table_id)
        table = self._get(table_id)
        async with table.lock:
            self._check_version(table, expected_version)
            result = resolve_showdown(
                table.snapshot,
                winner_id,
                declared_by=session.player_id,
                now=self._clock(),
            )
            return self._settle(table, result, session.player_id)

    async def restart_game(self, table_id: str, token: str) -> SubmitActionResponse:
        session = self.authenticate(token, table_id)
        table = self._get(table_id)
        async with table.lock:
            result = restart_game(table.snapshot, table.config.starting_stack)
            return self._settle(table, result, session.player_id)

    # -- sessions ---------------------------------------------------------------

    def authenticate(self, token: str | None, table_id: str | None = None) -> PlayerSession:
        if not token:
            raise TableRejected(ErrorKind.UNAUTHORIZED, "Missing session token")
        session = self._repo.get_session(token)
        if session is None or session.expires_at <= self._clock():
            raise TableRejected(ErrorKind.UNAUTHORIZED, "Invalid or expired session token")
        if table_id is not None and session.table_id != table_id:
            raise TableRejected(ErrorKind.UNAUTHORIZED, "Session does not belong to this table")
        return session

    # -- subscriptions ----------------------------------------------------------

    async def subscribe(self, table_id: str) -> asyncio.Queue[TableEvent | None]:
        table = self._get(table_id)
        queue: asyncio.Queue[TableEvent | None] = asyncio.Queue(maxsize=256)
        async with table.lock:
            self._subscriptions[table_id].add(queue)
        return queue

    async def unsubscribe(self, table_id: str, queue: asyncio.Queue[TableEvent | None]) -> None:
        subscribers = self._subscriptions.get(table_id)
        if subscribers is None:
            return
        subscribers.discard(queue)
        if not subscribers:
            self._subscriptions.pop(table_id, None)

    # -- internals --------------------------------------------------------------

    def _get(self, table_id: str) -> TableRuntime:
        try:
            return self._repo.get(table_id)
        except KeyError as exc:
            raise TableRejected(ErrorKind.GAME_NOT_FOUND, "Game not found") from exc

    def _get_by_room_code(self, room_code: str) -> TableRuntime:
        try:
            return self._repo.get_by_room_code(room_code)
        except KeyError as exc:
            raise TableRejected(ErrorKind.GAME_NOT_FOUND, "Game not found") from exc

    def _claim_room_code(self, requested: str | None) -> str:
        if requested:
            code = requested.strip().upper()
            if self._repo.room_code_exists(code):
                raise TableRejected(
                    ErrorKind.DUPLICATE_ROOM_CODE,
                    f"Room code {code} is already in use",
                )
            return code
        for _ in range(_ROOM_CODE_ATTEMPTS):
            code = generate_room_code()
            if not self._repo.room_code_exists(code):
                return code
        raise TableRejected(ErrorKind.DUPLICATE_ROOM_CODE, "Could not allocate a free room code")

    def _issue_session(self, table_id: str, player_id: str) -> PlayerSession:
        now = self._clock()
        session = PlayerSession(
            token=new_session_token(),
            player_id=player_id,
            table_id=table_id,
            created_at=now,
            expires_at=now + timedelta(hours=self._settings.session_ttl_hours),
        )
        self._repo.save_session(session)
        return session

    def _check_version(self, table: TableRuntime, expected_version: int | None) -> None:
        if expected_version is not None and expected_version != table.version:
            raise TableRejected(
                ErrorKind.STALE_SNAPSHOT,
                f"Table is at version {table.version}, not {expected_version}",
            )

    def _settle(
        self,
        table: TableRuntime,
        result: ActionResult,
        viewer_id: str | None,
    ) -> SubmitActionResponse:
        if not result.accepted or result.snapshot is None:
            error = result.error
            logger.info(
                "rejected at %s for %s: %s",
                table.table_id,
                viewer_id,
                error.code.value if error else "unknown",
            )
            return SubmitActionResponse(
                accepted=False,
                error=error,
                view_state=self._build_view_state(table, viewer_id),
            )

        self._commit(table, result.snapshot)
        last = table.snapshot.last_action
        logger.debug(
            "table %s v%s: %s -> %s",
            table.table_id,
            table.version,
            last.type.value if last else "reset",
            table.snapshot.phase.value,
        )
        return SubmitActionResponse(
            accepted=True,
            view_state=self._build_view_state(table, viewer_id),
        )

    def _commit(self, table: TableRuntime, snapshot: GameSnapshot) -> None:
        table.commit(snapshot)
        self._emit_event(table)

    def _emit_event(self, table: TableRuntime) -> None:
        event = TableEvent(
            table_id=table.table_id,
            version=table.version,
            ts=self._clock().isoformat(),
            last_action=table.snapshot.last_action,
            snapshot=table.snapshot,
        )
        for queue in list(self._subscriptions.get(table.table_id, set())):
            try:
                queue.put_nowait(event)
            except asyncio.QueueFull:
                logger.warning("subscriber queue full for %s; dropping event", table.table_id)

    def _close_subscriptions(self, table_id: str) -> None:
        for queue in self._subscriptions.pop(table_id, set()):
            while queue.full():
                queue.get_nowait()
            queue.put_nowait(TABLE_CLOSED)

    def _build_view_state(self, table: TableRuntime, viewer_id: str | None) -> ViewState:
        snapshot = table.snapshot
        sb_seat = small_blind_seat(snapshot)
        return ViewState(
            table_id=table.table_id,
            version=table.version,
            snapshot=snapshot,
            viewer_id=viewer_id,
            allowed_actions=allowed_actions(snapshot, viewer_id),
            pending_blind=pending_blind(snapshot),
            small_blind_seat=sb_seat,
            big_blind_seat=big_blind_seat(snapshot, sb_seat),
            state_hash=model_hash(snapshot),
        )


def _hand_running(snapshot: GameSnapshot) -> bool:
    if snapshot.dealer_seat is None:
        return False
    return snapshot.phase in BETTING_PHASES or snapshot.phase in (Phase.SETUP, Phase.SHOWDOWN)


def _is_win(action: PlayerAction | Mapping[str, Any]) -> bool:
    if isinstance(action, Mapping):
        return action.get("type") == "WIN"
    return isinstance(action, WinAction)


def _attributed(
    action: PlayerAction | Mapping[str, Any],
    player_id: str,
) -> PlayerAction | Mapping[str, Any]:
    """Bind the action to the authenticated player, whatever the body claimed."""
    if isinstance(action, Mapping):
        return {**action, "player_id": player_id}
    return PLAYER_ACTION_ADAPTER.validate_python(
        {**action.model_dump(), "player_id": player_id},
    )
