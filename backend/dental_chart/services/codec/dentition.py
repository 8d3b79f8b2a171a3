from __future__ import annotations

from typing import Any, Literal

from pydantic import Field

from dental_chart.services.codec.common import (
    PAYLOAD_VERSION,
    DecodeResult,
    PayloadShape,
    ToothChartState,
    choice,
    complete_tooth_map,
    compress_tooth_map,
    decode_default,
    expand_legacy_tooth_map,
    expand_tooth_map,
    full_chart,
    looks_like_tooth_map,
)
from dental_chart.services.teeth import ToothId, normalize_primary_teeth

DentitionStatus = Literal["present", "crown-missing", "roots-only", "fully-missing"]

DENTITION_STATUSES: tuple[str, ...] = ("present", "crown-missing", "roots-only", "fully-missing")
DEFAULT_STATUS = "present"
DEFAULT_PREFERENCE: tuple[str, ...] = ("present", "fully-missing", "crown-missing", "roots-only")

_status = choice(DENTITION_STATUSES)


class DentitionState(ToothChartState):
    teeth: dict[ToothId, DentitionStatus] = Field(default_factory=full_chart(DEFAULT_STATUS))


def encode(state: DentitionState) -> dict[str, Any]:
    teeth = complete_tooth_map(state.teeth, DEFAULT_STATUS)
    default, exceptions = compress_tooth_map(teeth, preference=DEFAULT_PREFERENCE)
    payload: dict[str, Any] = {
        "v": PAYLOAD_VERSION,
        "default": default,
        "exceptions": exceptions,
    }
    if state.primary_teeth:
        payload["primaryTeeth"] = list(state.primary_teeth)
    return payload


def detect_shape(data: dict[str, Any]) -> PayloadShape:
    if data.get("v") == PAYLOAD_VERSION or "default" in data:
        return PayloadShape.compressed
    if (
        "exceptions" in data
        or "originalToothStates" in data
        or "toothStates" in data
        or looks_like_tooth_map(data)
    ):
        return PayloadShape.legacy
    return PayloadShape.unknown


def decode(data: dict[str, Any]) -> DecodeResult[DentitionState]:
    shape = detect_shape(data)
    problems: list[str] = []
    primary: list[Any] = list(data.get("primaryTeeth") or [])

    if shape is PayloadShape.compressed:
        default = decode_default(
            data, "default", coerce=_status, fallback=DEFAULT_STATUS, problems=problems
        )
        teeth = expand_tooth_map(default, data.get("exceptions"), coerce=_status, problems=problems)
    elif shape is PayloadShape.legacy:
        teeth, renumbered = _decode_legacy(data, problems)
        primary.extend(renumbered)
    else:
        return DecodeResult(DentitionState(), shape, ["unrecognized dentition payload"])

    state = DentitionState(teeth=teeth, primary_teeth=normalize_primary_teeth(primary))
    return DecodeResult(state, shape, problems)


def _decode_legacy(data: dict[str, Any], problems: list[str]) -> tuple[dict, list[ToothId]]:
    if "exceptions" in data:
        default = data.get("defaultState") or DEFAULT_STATUS
        try:
            default = _status(default)
        except ValueError as exc:
            problems.append(f"defaultState: {exc}")
            default = DEFAULT_STATUS
        teeth = expand_tooth_map(default, data.get("exceptions"), coerce=_status, problems=problems)
        return teeth, []
    if data.get("savedWithPrimaryNumbers") and "originalToothStates" in data:
        return expand_legacy_tooth_map(
            data["originalToothStates"], DEFAULT_STATUS, coerce=_status, problems=problems
        )
    if "toothStates" in data:
        return expand_legacy_tooth_map(
            data["toothStates"], DEFAULT_STATUS, coerce=_status, problems=problems
        )
    if "originalToothStates" in data:
        return expand_legacy_tooth_map(
            data["originalToothStates"], DEFAULT_STATUS, coerce=_status, problems=problems
        )
    return expand_legacy_tooth_map(data, DEFAULT_STATUS, coerce=_status, problems=problems)
