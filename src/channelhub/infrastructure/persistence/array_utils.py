"""Helpers for JSON array columns."""

from collections.abc import Sequence


def pull_values(items: Sequence[str], values: Sequence[str]) -> list[str]:
    """Remove every occurrence of values from items.

    Args:
        items: current array contents
        values: values to remove

    Returns:
        new list without the removed values, order preserved
    """
    to_remove = set(values)
    return [item for item in items if item not in to_remove]


def push_values(items: Sequence[str], values: Sequence[str]) -> list[str]:
    """Append values to the end of items. Duplicates are kept."""
    return [*items, *values]


def replace_first(items: Sequence[str], old_value: str, new_value: str) -> list[str]:
    """Replace the first element equal to old_value.

    Only the matching element changes. Other elements and their order
    are left untouched.

    Args:
        items: current array contents
        old_value: value to look for
        new_value: replacement value

    Returns:
        new list (a plain copy if old_value is absent)
    """
    replaced = list(items)
    for index, item in enumerate(replaced):
        if item == old_value:
            replaced[index] = new_value
            break
    return replaced

