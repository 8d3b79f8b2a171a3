"""FDI tooth identifiers and the permanent-to-primary substitution table.

Canonical enumeration is quadrant 1, 2, 3, 4 and positions 1..8 within each
quadrant. Every list the charting core emits is sorted in this order.
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Collection, Iterable, Mapping

ToothId = str

QUADRANTS: tuple[int, ...] = (1, 2, 3, 4)

QUADRANT_NAMES: Mapping[int, str] = MappingProxyType(
    {
        1: "upper-right",
        2: "upper-left",
        3: "lower-left",
        4: "lower-right",
    }
)

ALL_TOOTH_IDS: tuple[ToothId, ...] = tuple(
    f"{quadrant}{position}" for quadrant in QUADRANTS for position in range(1, 9)
)

_TOOTH_ORDER: Mapping[ToothId, int] = MappingProxyType(
    {tooth: index for index, tooth in enumerate(ALL_TOOTH_IDS)}
)

# Incisors through the second premolar position have a deciduous counterpart:
# quadrant 1 -> 5, 2 -> 6, 3 -> 7, 4 -> 8.
PRIMARY_TOOTH_MAP: Mapping[ToothId, ToothId] = MappingProxyType(
    {
        f"{quadrant}{position}": f"{quadrant + 4}{position}"
        for quadrant in QUADRANTS
        for position in range(1, 6)
    }
)

_PERMANENT_BY_PRIMARY: Mapping[ToothId, ToothId] = MappingProxyType(
    {primary: permanent for permanent, primary in PRIMARY_TOOTH_MAP.items()}
)


def all_tooth_ids() -> list[ToothId]:
    return list(ALL_TOOTH_IDS)


def is_tooth_id(value: object) -> bool:
    return isinstance(value, str) and value in _TOOTH_ORDER


def is_primary_code(value: object) -> bool:
    return isinstance(value, str) and value in _PERMANENT_BY_PRIMARY


def primary_equivalent(tooth: ToothId) -> ToothId | None:
    return PRIMARY_TOOTH_MAP.get(tooth)


def permanent_equivalent(code: ToothId) -> ToothId | None:
    return _PERMANENT_BY_PRIMARY.get(code)


def display_id(tooth: ToothId, is_primary: bool) -> ToothId:
    if is_primary:
        mapped = primary_equivalent(tooth)
        if mapped is not None:
            return mapped
    return tooth


def relabel(tooth: ToothId, primary_teeth: Collection[ToothId]) -> ToothId:
    return display_id(tooth, tooth in primary_teeth)


def sort_teeth(teeth: Iterable[ToothId]) -> list[ToothId]:
    return sorted(teeth, key=lambda tooth: (_TOOTH_ORDER.get(tooth, len(_TOOTH_ORDER)), str(tooth)))


def normalize_primary_teeth(values: Iterable[object] | None) -> list[ToothId]:
    """Return the permanent ids flagged as primary, de-duplicated and sorted.

    Older charts stored the display code ("51") instead of the permanent id
    ("11"); both spellings are accepted. Ids with no primary counterpart are
    dropped.
    """
    if not values:
        return []
    flagged: set[ToothId] = set()
    for value in values:
        tooth = str(value).strip()
        if is_primary_code(tooth):
            tooth = _PERMANENT_BY_PRIMARY[tooth]
        if tooth in PRIMARY_TOOTH_MAP:
            flagged.add(tooth)
    return sort_teeth(flagged)
