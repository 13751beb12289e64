"""Helpers for reading set attributes out of flattened resource state."""

from __future__ import annotations

from typing import Iterable, Mapping


def set_from_state_attributes(attributes: Mapping[str, str], key: str) -> frozenset:
    """Read the set stored under ``key`` as ``key.#`` and ``key.<index>`` entries."""
    count_key = f"{key}.#"
    try:
        length = int(attributes[count_key])
    except (KeyError, ValueError) as err:
        raise ValueError(f"invalid {count_key}: {err}") from err
    item_keys = [f"{key}.{index}" for index in range(length)]
    if any(item_key not in attributes for item_key in item_keys):
        raise ValueError(f"{key}.# mismatch items retrieved from state")
    return frozenset(attributes[item_key] for item_key in item_keys)


def check_state_set_attr(
    attr_key: str, attributes: Mapping[str, str], expected_items: Iterable[str]
) -> frozenset:
    """Check that the set under ``attr_key`` holds exactly the expected items; return it."""
    try:
        found = set_from_state_attributes(attributes, attr_key)
    except ValueError as err:
        raise ValueError(f"get {attr_key} set: {err}") from err
    expected = list(expected_items)
    if len(expected) != len(found):
        raise ValueError("expectedItems length mismatching between plan and state")
    for item in expected:
        if item not in found:
            raise ValueError(f"expectedItem {item} not found in state")
    return found