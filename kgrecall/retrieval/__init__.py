"""Hybrid graph and direct-chunk recall."""

from typing import Any

__all__ = ["answer", "ask", "explain"]


async def ask(*args: Any, **kwargs: Any):
    from .pipeline import ask as _ask

    return await _ask(*args, **kwargs)


async def answer(*args: Any, **kwargs: Any):
    from .pipeline import answer as _answer

    return await _answer(*args, **kwargs)


async def explain(*args: Any, **kwargs: Any):
    from .explain import explain as _explain

    return await _explain(*args, **kwargs)
