"""Shared route helpers used across multiple route modules."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import Any, TypeVar

from fastapi import HTTPException

from ..monitor_db import StorageError

T = TypeVar("T")


async def call_store(func: Callable[..., T], *args: Any) -> T:
    """Run a store call in a thread, mapping storage and validation errors to HTTP."""
    try:
        return await asyncio.to_thread(func, *args)
    except StorageError as exc:
        raise HTTPException(status_code=500, detail=f"Storage error: {exc}") from exc
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
