"""Shared Pydantic schemas for Registry-Sync."""

from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str = "ok"
    version: str = "0.1.0"
    service: str = "registry-sync"


class ErrorResponse(BaseModel):
    error: str
    code: str
    detail: str = ""
