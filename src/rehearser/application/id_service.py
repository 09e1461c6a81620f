"""Stable identifiers for items and review plans."""

from ulid import ULID


def generate_item_id() -> str:
    """Generate a sortable item ID using ULID."""
    return f"item_{ULID()}"


def generate_plan_id() -> str:
    return f"plan_{ULID()}"
