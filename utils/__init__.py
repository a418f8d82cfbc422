"""Utility modules for cross-cutting concerns."""

from utils.timezone import now_utc, to_utc, parse_iso, add_years, days_between
from utils.actor_context import (
    SYSTEM_ACTOR,
    get_current_actor,
    set_current_actor,
    clear_current_actor,
    actor_context,
)
