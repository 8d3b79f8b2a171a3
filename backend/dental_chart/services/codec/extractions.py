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

ExtractionReason = Literal["none", "loose", "root-tip", "non-restorable"]

EXTRACTION_REASONS: tuple[str, ...] = ("none", "loose", "root-tip", "non-restorable")
DEFAULT_REASON = "none"

_reason = choice(EXTRACTION_REASONS)


class ExtractionsState(ToothChartState):
    teeth: dict[ToothId, ExtractionReason] = Field(default_factory=full_chart(DEFAULT_REASON))


def encode(state: ExtractionsState) -> dict[str, Any]:
    teeth = complete_tooth_map(state.teeth, DEFAULT_REASON)
    default, exceptions = compress_tooth_map(teeth, preference=EXTRACTION_REASONS)
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
    if "extractions" in data or "extractionStates" in data or looks_like_tooth_map(data):
        return PayloadShape.legacy
    return PayloadShape.unknown


def decode(data: dict[str, Any]) -> DecodeResult[ExtractionsState]:
    shape = detect_shape(data)
    problems: list[str] = []
    primary: list[Any] = list(data.get("primaryTeeth") or [])

    if shape is PayloadShape.compressed:
        default = decode_default(
            data, "default", coerce=_reason, fallback=DEFAULT_REASON, problems=problems
        )
        teeth = expand_tooth_map(default, data.get("exceptions"), coerce=_reason, problems=problems)
    elif shape is PayloadShape.legacy:
        if "extractions" in data:
            # Sparse map: only teeth that need extracting were written.
            raw = data["extractions"]
        elif "extractionStates" in data:
            raw = data["extractionStates"]
            if isinstance(raw, dict) and isinstance(raw.get("extractionStates"), dict):
                raw = raw["extractionStates"]
        else:
            raw = data
        teeth, renumbered = expand_legacy_tooth_map(
            raw, DEFAULT_REASON, coerce=_reason, problems=problems
        )
        primary.extend(renumbered)
    else:
        return DecodeResult(ExtractionsState(), shape, ["unrecognized extractions payload"])

    state = ExtractionsState(teeth=teeth, primary_teeth=normalize_primary_teeth(primary))
    return DecodeResult(state, shape, problems)
