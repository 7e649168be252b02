"""
Run route: execute a buffer on the remote execution service.
"""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field

from ..errors import ExecutionError
from ..executor import CodeExecutor
from ..protocol import DEFAULT_LANGUAGE, MAX_CODE_LENGTH, Language

logger = logging.getLogger(__name__)


class RunRequest(BaseModel):
    code: str = Field(..., min_length=1, max_length=MAX_CODE_LENGTH)
    language: Language = DEFAULT_LANGUAGE
    stdin: Optional[str] = Field(None, max_length=MAX_CODE_LENGTH)


def create_run_router(executor: CodeExecutor) -> APIRouter:
    """Build the ``/api/run`` router."""
    router = APIRouter(prefix="/api/run", tags=["run"])

    @router.post("")
    async def run(body: RunRequest):
        try:
            result = await executor.run(body.code, body.language, body.stdin or "")
        except ExecutionError as e:
            raise HTTPException(status_code=502, detail=str(e) or "Run error")
        # Same shape the execution service uses; no envelope
        return result.to_dict()

    return router


__all__ = [
    "RunRequest",
    "create_run_router",
]
