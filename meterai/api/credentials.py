"""Credential detection and OAuth token custody endpoints."""

from __future__ import annotations

from typing import Annotated

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from meterai.context import AppContext
from meterai.credentials.drift import ChangeLog, ChangeLogEntry, DetectionStatus, TokenStatus
from meterai.credentials.vault import VaultMetadata

from .deps import get_context

router = APIRouter(prefix="/api/credentials")

Context = Annotated[AppContext, Depends(get_context)]


class CustomPathRequest(BaseModel):
    path: str | None = None


class ImportRequest(BaseModel):
    data: str = Field(min_length=1)


def _metadata(entry: VaultMetadata) -> VaultMetadata:
    return VaultMetadata.model_validate(entry.model_dump())


@router.get("/detection")
def detection_status(context: Context) -> DetectionStatus:
    return context.drift.detection_status()


@router.get("/has-token")
def has_source_token(context: Context) -> dict:
    return {"has_token": context.drift.has_source_token()}


@router.put("/custom-path")
def set_custom_path(body: CustomPathRequest, context: Context) -> DetectionStatus:
    context.guard.set_custom_credentials_path(body.path)
    return context.drift.detection_status()


@router.get("/token")
def token_status(context: Context) -> TokenStatus:
    return context.drift.status()


@router.post("/token/copy")
def copy_token(context: Context) -> VaultMetadata:
    return _metadata(context.drift.copy_to_internal())


@router.post("/token/check")
def check_token(context: Context) -> ChangeLogEntry:
    return context.drift.check()


@router.get("/token/history")
def token_history(context: Context) -> ChangeLog:
    return context.drift.history()


@router.get("/token/export")
def export_token(context: Context) -> dict:
    return {"data": context.drift.export_token()}


@router.post("/token/import")
def import_token(body: ImportRequest, context: Context) -> VaultMetadata:
    return _metadata(context.drift.import_token(body.data))


@router.delete("/token")
def clear_token(context: Context) -> dict:
    context.drift.clear()
    return {"status": "ok"}
