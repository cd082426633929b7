from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, WebSocket, WebSocketDisconnect
from pydantic import BaseModel, ConfigDict

from pokerroom_backend.api.deps import bearer_token, get_table_service, optional_bearer_token
from pokerroom_backend.engine.models import (
    ErrorKind,
    JoinResult,
    SubmitActionRequest,
    SubmitActionResponse,
    TableConfig,
    ViewState,
)
from pokerroom_backend.engine.service import TABLE_CLOSED, TableRejected, TableService


router = APIRouter(prefix="/api")

_STATUS_BY_KIND = {
    ErrorKind.GAME_NOT_FOUND: 404,
    ErrorKind.PLAYER_NOT_FOUND: 404,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.SEAT_TAKEN: 409,
    ErrorKind.DUPLICATE_NAME: 409,
    ErrorKind.DUPLICATE_ROOM_CODE: 409,
    ErrorKind.GAME_FULL: 409,
    ErrorKind.GAME_ALREADY_STARTED: 409,
    ErrorKind.STALE_SNAPSHOT: 409,
}


class CreateTableRequest(BaseModel):
    config: TableConfig | None = None

    model_config = ConfigDict(extra="forbid")


class CreateTableResponse(BaseModel):
    table_id: str
    room_code: str
    view_state: ViewState


class JoinTableRequest(BaseModel):
    name: str
    seat: int

    model_config = ConfigDict(extra="forbid")


class DeclareWinnerRequest(BaseModel):
    winner_id: str
    expected_version: int | None = None

    model_config = ConfigDict(extra="forbid")


class LeaveTableResponse(BaseModel):
    table_deleted: bool
    view_state: ViewState | None = None


def _http_error(exc: TableRejected) -> HTTPException:
    return HTTPException(
        status_code=_STATUS_BY_KIND.get(exc.kind, 400),
        detail={"code": exc.kind.value, "message": exc.message},
    )


@router.post("/tables", response_model=CreateTableResponse)
async def create_table(
    request: CreateTableRequest | None = None,
    service: TableService = Depends(get_table_service),
) -> CreateTableResponse:
    try:
        view = await service.create_table(request.config if request else None)
    except TableRejected as exc:
        raise _http_error(exc) from exc
    return CreateTableResponse(
        table_id=view.table_id,
        room_code=view.snapshot.room_code,
        view_state=view,
    )


@router.post("/tables/{room_code}/join", response_model=JoinResult)
async def join_table(
    room_code: str,
    request: JoinTableRequest,
    service: TableService = Depends(get_table_service),
) -> JoinResult:
    try:
        return await service.join_table(room_code, request.name, request.seat)
    except TableRejected as exc:
        raise _http_error(exc) from exc


@router.get("/tables/{table_id}", response_model=ViewState)
async def get_table(
    table_id: str,
    token: str | None = Depends(optional_bearer_token),
    service: TableService = Depends(get_table_service),
) -> ViewState:
    try:
        if token is not None:
            return await service.get_view(table_id, token)
        return await service.get_table(table_id)
    except TableRejected as exc:
        raise _http_error(exc) from exc


@router.get("/rooms/{room_code}", response_model=ViewState)
async def get_room(
    room_code: str,
    service: TableService = Depends(get_table_service),
) -> ViewState:
    try:
        return await service.get_table_by_room_code(room_code)
    except TableRejected as exc:
        raise _http_error(exc) from exc


@router.post("/tables/{table_id}/actions", response_model=SubmitActionResponse)
async def submit_action(
    table_id: str,
    request: SubmitActionRequest,
    token: str = Depends(bearer_token),
    service: TableService = Depends(get_table_service),
) -> SubmitActionResponse:
    try:
        return await service.submit_action(
            table_id,
            token,
            request.action,
            expected_version=request.expected_version,
        )
    except TableRejected as exc:
        raise _http_error(exc) from exc


@router.post("/tables/{table_id}/start", response_model=SubmitActionResponse)
async def start_game(
    table_id: str,
    token: str = Depends(bearer_token),
    service: TableService = Depends(get_table_service),
) -> SubmitActionResponse:
    try:
        return await service.start_game(table_id, token)
    except TableRejected as exc:
        raise _http_error(exc) from exc


@router.post("/tables/{table_id}/next-hand", response_model=SubmitActionResponse)
async def start_next_hand(
    table_id: str,
    token: str = Depends(bearer_token),
    service: TableService = Depends(get_table_service),
) -> SubmitActionResponse:
    try:
        return await service.start_next_hand(table_id, token)
    except TableRejected as exc:
        raise _http_error(exc) from exc


@router.post("/tables/{table_id}/winner", response_model=SubmitActionResponse)
async def declare_winner(
    table_id: str,
    request: DeclareWinnerRequest,
    token: str = Depends(bearer_token),
    service: TableService = Depends(get_table_service),
) -> SubmitActionResponse:
    try:
        return await service.declare_winner(
            table_id,
            token,
            request.winner_id,
            expected_version=request.expected_version,
        )
    except TableRejected as exc:
        raise _http_error(exc) from exc


@router.post("/tables/{table_id}/restart", response_model=SubmitActionResponse)
async def restart_game(
    table_id: str,
    token: str = Depends(bearer_token),
    service: TableService = Depends(get_table_service),
) -> SubmitActionResponse:
    try:
        return await service.restart_game(table_id, token)
    except TableRejected as exc:
        raise _http_error(exc) from exc


@router.post("/tables/{table_id}/leave", response_model=LeaveTableResponse)
async def leave_table(
    table_id: str,
    token: str = Depends(bearer_token),
    service: TableService = Depends(get_table_service),
) -> LeaveTableResponse:
    try:
        view = await service.leave_table(table_id, token)
    except TableRejected as exc:
        raise _http_error(exc) from exc
    return LeaveTableResponse(table_deleted=view is None, view_state=view)


@router.websocket("/ws/tables/{table_id}")
async def table_socket(
    websocket: WebSocket,
    table_id: str,
    service: TableService = Depends(get_table_service),
) -> None:
    await websocket.accept()
    try:
        queue = await service.subscribe(table_id)
    except TableRejected:
        await websocket.close(code=1008)
        return

    try:
        view = await service.get_table(table_id)
        await websocket.send_json({"type": "VIEW_STATE", "payload": view.model_dump(mode="json")})
        while True:
            event = await queue.get()
            if event is TABLE_CLOSED:
                await websocket.send_json({"type": "TABLE_CLOSED", "payload": {"table_id": table_id}})
                await websocket.close(code=1000)
                return
            await websocket.send_json({"type": "EVENT", "payload": event.model_dump(mode="json")})
    except (WebSocketDisconnect, TableRejected):
        pass
    finally:
        await service.unsubscribe(table_id, queue)
