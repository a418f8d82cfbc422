"""Propagate the acting party (client, admin or system) through the call stack using contextvars."""

from contextvars import ContextVar
from contextlib import contextmanager

SYSTEM_ACTOR = "system"

_current_actor: ContextVar[str | None] = ContextVar("current_actor", default=None)


def get_current_actor() -> str:
    """
    Get the current actor from context.

    Falls back to SYSTEM_ACTOR: workers and sweeps run without a caller,
    and their writes are attributed to the system.
    """
    actor = _current_actor.get()
    if actor is None:
        return SYSTEM_ACTOR
    return actor


def set_current_actor(actor: str) -> None:
    """Set current actor in context."""
    _current_actor.set(actor)


def clear_current_actor() -> None:
    """
    Clear actor context.

    Must be called in finally block to prevent context leakage.
    """
    _current_actor.set(None)


@contextmanager
def actor_context(actor: str):
    """
    Context manager for temporarily setting the actor.

    Example:
        with actor_context(f"client:{client_id}"):
            checkout_service.checkout(...)
    """
    previous = _current_actor.get()
    set_current_actor(actor)
    try:
        yield
    finally:
        if previous is None:
            clear_current_actor()
        else:
            set_current_actor(previous)
