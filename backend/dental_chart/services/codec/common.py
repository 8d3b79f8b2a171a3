"""Shape-selection helpers shared by every assessment codec.

A full chart maps all 32 canonical teeth to a value. On the wire it is
stored as the most frequent value (``default``) plus the teeth that differ
from it (``exceptions``); boolean findings become presence lists.
"""

from __future__ import annotations

import enum
import json
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Any, Callable, Generic, Hashable, Iterable, Mapping, TypeVar

from pydantic import BaseModel, Field, field_validator

from dental_chart.services.teeth import (
    ALL_TOOTH_IDS,
    ToothId,
    is_primary_code,
    is_tooth_id,
    normalize_primary_teeth,
    permanent_equivalent,
    sort_teeth,
)

logger = logging.getLogger("dental_chart.codec")

PAYLOAD_VERSION = 2

V = TypeVar("V")
S = TypeVar("S")


class PayloadShape(str, enum.Enum):
    legacy = "legacy"
    compressed = "compressed"
    unknown = "unknown"


class ValidationError(ValueError):
    def __init__(self, missing: list[ToothId]) -> None:
        self.missing = missing
        super().__init__(f"Chart is missing {len(missing)} teeth: {', '.join(missing)}")


@dataclass
class DecodeResult(Generic[S]):
    state: S
    shape: PayloadShape
    problems: list[str] = field(default_factory=list)

    @property
    def degraded(self) -> bool:
        return self.shape is PayloadShape.unknown or bool(self.problems)


class ToothChartState(BaseModel):
    primary_teeth: list[ToothId] = Field(default_factory=list)

    @field_validator("primary_teeth", mode="before")
    @classmethod
    def _normalize_primary_teeth(cls, value):
        return normalize_primary_teeth(value)


def full_chart(value: Any) -> Callable[[], dict[ToothId, Any]]:
    return lambda: {tooth: value for tooth in ALL_TOOTH_IDS}


class ShortCodeTable:
    """Two-way lookup for enum values that are stored as short codes.

    Both directions pass unrecognised input through unchanged so values
    added after a code was assigned still round-trip.
    """

    def __init__(self, codes: Mapping[str, str]) -> None:
        self._forward = dict(codes)
        self._reverse = {code: value for value, code in codes.items()}
        if len(self._reverse) != len(self._forward):
            raise ValueError("Short codes must be unique")

    def shorten(self, value: str) -> str:
        return self._forward.get(value, value)

    def expand(self, code: str) -> str:
        return self._reverse.get(code, code)


def parse_json_object(raw: str | bytes | Mapping[str, Any] | None) -> dict[str, Any] | None:
    if isinstance(raw, Mapping):
        return dict(raw)
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    return data


def dumps_payload(payload: Mapping[str, Any]) -> str:
    return json.dumps(payload, sort_keys=True, separators=(",", ":"))


def canonical_key(value: Any) -> Hashable:
    if isinstance(value, (dict, list)):
        return json.dumps(value, sort_keys=True, separators=(",", ":"))
    return value


def require_full_map(teeth: Mapping[ToothId, Any]) -> None:
    missing = [tooth for tooth in ALL_TOOTH_IDS if tooth not in teeth]
    if missing:
        raise ValidationError(missing)


def complete_tooth_map(teeth: Mapping[ToothId, V], default: V) -> dict[ToothId, V]:
    try:
        require_full_map(teeth)
    except ValidationError as exc:
        logger.debug("Filling %s missing teeth with domain default", len(exc.missing))
        return {tooth: teeth.get(tooth, default) for tooth in ALL_TOOTH_IDS}
    return {tooth: teeth[tooth] for tooth in ALL_TOOTH_IDS}


def compress_tooth_map(
    teeth: Mapping[ToothId, V],
    *,
    preference: Iterable[Hashable] = (),
    key: Callable[[V], Hashable] = canonical_key,
) -> tuple[V, dict[ToothId, V]]:
    """Split a full chart into ``(default, exceptions)``.

    The default is the most frequent value. Ties go to the earliest entry in
    ``preference``, then to the value seen first in canonical tooth order.
    """
    counts: Counter[Hashable] = Counter()
    first_seen: dict[Hashable, V] = {}
    for tooth in ALL_TOOTH_IDS:
        value = teeth[tooth]
        value_key = key(value)
        counts[value_key] += 1
        first_seen.setdefault(value_key, value)

    rank = {value_key: index for index, value_key in enumerate(preference)}
    order = {value_key: index for index, value_key in enumerate(first_seen)}
    best = max(counts.values())
    winner = min(
        (value_key for value_key, count in counts.items() if count == best),
        key=lambda value_key: (rank.get(value_key, len(rank)), order[value_key]),
    )
    default = first_seen[winner]
    exceptions = {
        tooth: teeth[tooth] for tooth in ALL_TOOTH_IDS if key(teeth[tooth]) != winner
    }
    return default, exceptions


def decode_default(
    data: Mapping[str, Any],
    field_name: str,
    *,
    coerce: Callable[[Any], V],
    fallback: V,
    problems: list[str],
) -> V:
    if field_name not in data or data[field_name] is None:
        problems.append(f"missing {field_name}")
        return fallback
    try:
        return coerce(data[field_name])
    except (TypeError, ValueError) as exc:
        problems.append(f"{field_name}: {exc}")
        return fallback


def expand_tooth_map(
    default: V,
    exceptions: Any,
    *,
    coerce: Callable[[Any], V],
    problems: list[str],
) -> dict[ToothId, V]:
    """Rebuild ``exceptions[tooth] ?? default`` for every canonical tooth."""
    teeth = {tooth: default for tooth in ALL_TOOTH_IDS}
    if exceptions is None:
        return teeth
    if not isinstance(exceptions, Mapping):
        problems.append("exceptions is not an object")
        return teeth
    for raw_tooth, value in exceptions.items():
        tooth = str(raw_tooth)
        if not is_tooth_id(tooth):
            problems.append(f"ignored unknown tooth {tooth}")
            continue
        try:
            teeth[tooth] = coerce(value)
        except (TypeError, ValueError) as exc:
            problems.append(f"tooth {tooth}: {exc}")
    return teeth


def expand_legacy_tooth_map(
    raw: Any,
    default: V,
    *,
    coerce: Callable[[Any], V],
    problems: list[str],
) -> tuple[dict[ToothId, V], list[ToothId]]:
    """Rebuild a full chart from a flat per-tooth legacy map.

    Some legacy charts were saved under display numbers, so a primary code
    is folded back onto its permanent tooth and reported as primary.
    """
    teeth = {tooth: default for tooth in ALL_TOOTH_IDS}
    primary: list[ToothId] = []
    if not isinstance(raw, Mapping):
        problems.append("legacy tooth map is not an object")
        return teeth, primary
    for raw_tooth, value in raw.items():
        tooth = str(raw_tooth)
        if is_primary_code(tooth):
            tooth = permanent_equivalent(tooth)
            primary.append(tooth)
        if not is_tooth_id(tooth):
            problems.append(f"ignored unknown tooth {tooth}")
            continue
        try:
            teeth[tooth] = coerce(value)
        except (TypeError, ValueError) as exc:
            problems.append(f"tooth {tooth}: {exc}")
    return teeth, primary


def looks_like_tooth_map(data: Mapping[str, Any]) -> bool:
    return bool(data) and all(
        is_tooth_id(str(key)) or is_primary_code(str(key)) for key in data
    )


def presence_list(flags: Mapping[ToothId, bool]) -> list[ToothId]:
    return sort_teeth(tooth for tooth, flagged in flags.items() if flagged and is_tooth_id(tooth))


def flags_from_presence(teeth: Any, *, problems: list[str]) -> dict[ToothId, bool]:
    flags = {tooth: False for tooth in ALL_TOOTH_IDS}
    if teeth is None:
        return flags
    if not isinstance(teeth, (list, tuple)):
        problems.append("presence list is not a list")
        return flags
    for raw_tooth in teeth:
        tooth = str(raw_tooth)
        if is_primary_code(tooth):
            tooth = permanent_equivalent(tooth)
        if not is_tooth_id(tooth):
            problems.append(f"ignored unknown tooth {tooth}")
            continue
        flags[tooth] = True
    return flags


def choice(allowed: Iterable[str]) -> Callable[[Any], str]:
    allowed_values = frozenset(allowed)

    def _coerce(value: Any) -> str:
        if not isinstance(value, str) or value not in allowed_values:
            raise ValueError(f"unexpected value {value!r}")
        return value

    return _coerce


def coerce_bool(value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value != 0
    if isinstance(value, str) and value.strip().lower() in {"true", "false", "1", "0", "yes", "no"}:
        return value.strip().lower() in {"true", "1", "yes"}
    raise ValueError(f"not a boolean: {value!r}")


def optional_text(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None
