from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


ENGINE_VERSION = "0.1.0"
RULESET_VERSION = "nlhe-cash-manual-showdown-v1"


class Phase(str, Enum):
    SETUP = "SETUP"
    PREFLOP = "PREFLOP"
    FLOP = "FLOP"
    TURN = "TURN"
    RIVER = "RIVER"
    SHOWDOWN = "SHOWDOWN"
    HAND_OVER = "HAND_OVER"
    GAMEOVER = "GAMEOVER"


BETTING_PHASES = frozenset({Phase.PREFLOP, Phase.FLOP, Phase.TURN, Phase.RIVER})


class ActionType(str, Enum):
    FOLD = "FOLD"
    CHECK = "CHECK"
    CALL = "CALL"
    BET = "BET"
    RAISE = "RAISE"
    SMALL_BLIND = "SMALL_BLIND"
    BIG_BLIND = "BIG_BLIND"
    WIN = "WIN"
    SIT_OUT = "SIT_OUT"
    SIT_IN = "SIT_IN"


class ErrorKind(str, Enum):
    INVALID_ACTION = "INVALID_ACTION"
    NOT_YOUR_TURN = "NOT_YOUR_TURN"
    PLAYER_NOT_FOUND = "PLAYER_NOT_FOUND"
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    INVALID_BET_AMOUNT = "INVALID_BET_AMOUNT"
    INVALID_ACTION_PHASE = "INVALID_ACTION_PHASE"
    NOT_ENOUGH_PLAYERS = "NOT_ENOUGH_PLAYERS"
    INTERNAL_ERROR = "INTERNAL_ERROR"
    # raised by the table service, never by the engine
    GAME_NOT_FOUND = "GAME_NOT_FOUND"
    GAME_ALREADY_STARTED = "GAME_ALREADY_STARTED"
    SEAT_TAKEN = "SEAT_TAKEN"
    INVALID_SEAT = "INVALID_SEAT"
    GAME_FULL = "GAME_FULL"
    DUPLICATE_NAME = "DUPLICATE_NAME"
    DUPLICATE_ROOM_CODE = "DUPLICATE_ROOM_CODE"
    STALE_SNAPSHOT = "STALE_SNAPSHOT"
    UNAUTHORIZED = "UNAUTHORIZED"


class TableConfig(BaseModel):
    small_blind: int = Field(default=5, gt=0)
    big_blind: int = Field(default=10, gt=0)
    starting_stack: int = Field(default=1_000, gt=0)
    max_players: int = Field(default=10, ge=2)
    room_code: str | None = None

    model_config = ConfigDict(extra="forbid")


class PlayerState(BaseModel):
    id: str
    name: str
    seat: int
    chip_count: int = Field(ge=0)
    current_bet: int = Field(default=0, ge=0)
    has_folded: bool = False
    is_sitting_out: bool = False
    is_active: bool = True

    model_config = ConfigDict(extra="forbid", frozen=True)

    @property
    def in_hand(self) -> bool:
        """Still contending for the pot of the current hand."""
        return self.is_active and not self.has_folded and not self.is_sitting_out

    @property
    def can_act(self) -> bool:
        """Part of the turn rotation; all-in contenders are skipped."""
        return self.in_hand and self.chip_count > 0


class ActionRecord(BaseModel):
    seq: int
    type: ActionType
    player_id: str | None = None
    target_player_id: str | None = None
    amount: int | None = None
    phase: Phase
    created_at: datetime

    model_config = ConfigDict(extra="forbid", frozen=True)


class GameSnapshot(BaseModel):
    id: str
    room_code: str
    small_blind: int = Field(gt=0)
    big_blind: int = Field(gt=0)
    phase: Phase = Phase.SETUP
    pot_size: int = Field(default=0, ge=0)
    current_turn: int | None = None
    dealer_seat: int | None = None
    players: tuple[PlayerState, ...] = ()
    highest_bet: int = Field(default=0, ge=0)
    min_raise: int = Field(gt=0)
    last_action: ActionRecord | None = None
    actions: tuple[ActionRecord, ...] = ()
    creator_id: str | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)

    def player_by_id(self, player_id: str | None) -> PlayerState | None:
        if player_id is None:
            return None
        return next((p for p in self.players if p.id == player_id), None)

    def player_at_seat(self, seat: int | None) -> PlayerState | None:
        if seat is None:
            return None
        return next((p for p in self.players if p.seat == seat), None)

    def total_chips(self) -> int:
        return self.pot_size + sum(p.chip_count for p in self.players)


class FoldAction(BaseModel):
    type: Literal["FOLD"] = "FOLD"
    player_id: str | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)


class CheckAction(BaseModel):
    type: Literal["CHECK"] = "CHECK"
    player_id: str | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)


class CallAction(BaseModel):
    type: Literal["CALL"] = "CALL"
    player_id: str | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)


class BetAction(BaseModel):
    type: Literal["BET"] = "BET"
    player_id: str | None = None
    amount: int | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)


class RaiseAction(BaseModel):
    type: Literal["RAISE"] = "RAISE"
    player_id: str | None = None
    amount: int | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)


class SmallBlindAction(BaseModel):
    type: Literal["SMALL_BLIND"] = "SMALL_BLIND"
    player_id: str | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)


class BigBlindAction(BaseModel):
    type: Literal["BIG_BLIND"] = "BIG_BLIND"
    player_id: str | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)


class SitOutAction(BaseModel):
    type: Literal["SIT_OUT"] = "SIT_OUT"
    player_id: str | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)


class SitInAction(BaseModel):
    type: Literal["SIT_IN"] = "SIT_IN"
    player_id: str | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)


class WinAction(BaseModel):
    type: Literal["WIN"] = "WIN"
    target_player_id: str | None = None
    # who declared the winner; absent when the engine awards a fold-out
    player_id: str | None = None

    model_config = ConfigDict(extra="forbid", frozen=True)


PlayerAction = Annotated[
    Union[
        FoldAction,
        CheckAction,
        CallAction,
        BetAction,
        RaiseAction,
        SmallBlindAction,
        BigBlindAction,
        SitOutAction,
        SitInAction,
        WinAction,
    ],
    Field(discriminator="type"),
]

PLAYER_ACTION_ADAPTER: TypeAdapter[PlayerAction] = TypeAdapter(PlayerAction)


class EngineError(BaseModel):
    code: ErrorKind
    message: str

    model_config = ConfigDict(extra="forbid")


class ActionResult(BaseModel):
    accepted: bool
    snapshot: GameSnapshot | None = None
    error: EngineError | None = None

    model_config = ConfigDict(extra="forbid")


class AllowedActions(BaseModel):
    can_fold: bool = False
    can_check: bool = False
    can_call: bool = False
    can_bet: bool = False
    can_raise: bool = False
    can_post_small_blind: bool = False
    can_post_big_blind: bool = False
    call_amount: int = 0
    min_raise_to: int | None = None
    max_raise_to: int | None = None
    pot_size: int = 0

    model_config = ConfigDict(extra="forbid")


class PendingBlind(BaseModel):
    type: ActionType
    player_id: str
    seat: int
    amount: int

    model_config = ConfigDict(extra="forbid")


class ReplayStep(BaseModel):
    index: int
    action_type: str
    error: EngineError

    model_config = ConfigDict(extra="forbid")


class ReplayResult(BaseModel):
    final_snapshot: GameSnapshot
    rejected_steps: list[ReplayStep]
    invariant_checks: dict[str, bool]
    state_hash: str

    model_config = ConfigDict(extra="forbid")


class PlayerSession(BaseModel):
    token: str
    player_id: str
    table_id: str
    created_at: datetime
    expires_at: datetime

    model_config = ConfigDict(extra="forbid", frozen=True)


class ViewState(BaseModel):
    table_id: str
    version: int
    snapshot: GameSnapshot
    viewer_id: str | None = None
    allowed_actions: AllowedActions
    pending_blind: PendingBlind | None = None
    small_blind_seat: int | None = None
    big_blind_seat: int | None = None
    state_hash: str
    engine_version: str = ENGINE_VERSION
    ruleset_version: str = RULESET_VERSION

    model_config = ConfigDict(extra="forbid")


class TableEvent(BaseModel):
    table_id: str
    version: int
    ts: str
    last_action: ActionRecord | None = None
    snapshot: GameSnapshot

    model_config = ConfigDict(extra="forbid")


class SubmitActionRequest(BaseModel):
    action: PlayerAction
    expected_version: int | None = None

    model_config = ConfigDict(extra="forbid")


class SubmitActionResponse(BaseModel):
    accepted: bool
    error: EngineError | None = None
    view_state: ViewState

    model_config = ConfigDict(extra="forbid")


class JoinResult(BaseModel):
    player_id: str
    token: str
    view_state: ViewState

    model_config = ConfigDict(extra="forbid")
