from __future__ import annotations

from fastapi import Header, HTTPException

from pokerroom_backend.config import settings
from pokerroom_backend.engine.service import TableService
from pokerroom_backend.repo.in_memory import InMemoryTableRepository


repository = InMemoryTableRepository()
table_service = TableService(repository, settings=settings)


def get_table_service() -> TableService:
    return table_service


def bearer_token(authorization: str | None = Header(default=None)) -> str:
    if not authorization or not authorization.lower().startswith("bearer "):
        raise HTTPException(
            status_code=401,
            detail={"code": "UNAUTHORIZED", "message": "missing token"},
        )
    token = authorization.split(" ", 1)[1].strip()
    if not token:
        raise HTTPException(
            status_code=401,
            detail={"code": "UNAUTHORIZED", "message": "bad token"},
        )
    return token


def optional_bearer_token(authorization: str | None = Header(default=None)) -> str | None:
    if authorization is None:
        return None
    return bearer_token(authorization)
