"""Invoke optional observer callbacks, sync or async."""

from __future__ import annotations

import inspect
from typing import Any

from micro_ai.chat.models import Hook


async def notify(hook: Hook | None, *args: Any) -> None:
    """Call hook with args, awaiting the result when it is awaitable."""
    if hook is None:
        return
    result = hook(*args)
    if inspect.isawaitable(result):
        await result
