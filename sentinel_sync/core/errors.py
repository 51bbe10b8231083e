from __future__ import annotations

from fastapi import HTTPException


class SyncError(Exception):
    """Base for run-level failures of the hazard sync."""


class StorageError(SyncError):
    """Reading or committing the persisted collection failed."""


def not_found(code: str, message: str):
    raise HTTPException(status_code=404, detail={"code": code, "message": message})


def service_unavailable(code: str, message: str):
    raise HTTPException(status_code=503, detail={"code": code, "message": message})
