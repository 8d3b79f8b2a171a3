from __future__ import annotations

from typing import Any, Literal

from pydantic import Field, field_validator

from dental_chart.services.codec.common import (
    PAYLOAD_VERSION,
    DecodeResult,
    PayloadShape,
    ShortCodeTable,
    ToothChartState,
    choice,
    coerce_bool,
    complete_tooth_map,
    compress_tooth_map,
    decode_default,
    expand_tooth_map,
    full_chart,
    optional_text,
)
from dental_chart.services.teeth import (
    ToothId,
    is_primary_code,
    is_tooth_id,
    normalize_primary_teeth,
    permanent_equivalent,
    sort_teeth,
)

ImplantKind = Literal["none", "single", "bridge"]
TimingMode = Literal["immediate", "delayed"]

IMPLANT_KINDS: tuple[str, ...] = ("none", "single", "bridge")
DEFAULT_KIND = "none"
DEFAULT_TIMING = "immediate"

TIMING_CODES = ShortCodeTable({"immediate": "IM", "delayed": "DL"})

_kind = choice(IMPLANT_KINDS)
_timing = choice(("immediate", "delayed"))


class ImplantState(ToothChartState):
    teeth: dict[ToothId, ImplantKind] = Field(default_factory=full_chart(DEFAULT_KIND))
    bone_grafting_planned: bool = False
    timing: TimingMode = DEFAULT_TIMING
    notes: str = ""

    @field_validator("notes", mode="before")
    @classmethod
    def _notes_text(cls, value):
        return optional_text(value) or ""

    def teeth_of_kind(self, kind: str) -> list[ToothId]:
        return sort_teeth(tooth for tooth, value in self.teeth.items() if value == kind)


def encode(state: ImplantState) -> dict[str, Any]:
    teeth = complete_tooth_map(state.teeth, DEFAULT_KIND)
    default, exceptions = compress_tooth_map(teeth, preference=IMPLANT_KINDS)
    payload: dict[str, Any] = {
        "v": PAYLOAD_VERSION,
        "default": default,
        "exceptions": exceptions,
        "timing": TIMING_CODES.shorten(state.timing),
    }
    if state.bone_grafting_planned:
        payload["boneGrafting"] = True
    if state.notes:
        payload["notes"] = state.notes
    if state.primary_teeth:
        payload["primaryTeeth"] = list(state.primary_teeth)
    return payload


def detect_shape(data: dict[str, Any]) -> PayloadShape:
    if data.get("v") == PAYLOAD_VERSION or "default" in data:
        return PayloadShape.compressed
    if any(
        key in data
        for key in ("singleImplantTeeth", "bridgeImplantTeeth", "boneGraftingPlanned", "timingMode")
    ):
        return PayloadShape.legacy
    return PayloadShape.unknown


def _decode_timing(value: Any, problems: list[str]) -> str:
    text = optional_text(value)
    if text is None:
        return DEFAULT_TIMING
    try:
        return _timing(TIMING_CODES.expand(text))
    except ValueError as exc:
        problems.append(f"timing: {exc}")
        return DEFAULT_TIMING


def _decode_bool(value: Any, problems: list[str], label: str) -> bool:
    if value is None:
        return False
    try:
        return coerce_bool(value)
    except ValueError as exc:
        problems.append(f"{label}: {exc}")
        return False


def _mark_teeth(
    teeth: dict[ToothId, str],
    listed: Any,
    kind: str,
    primary: list[ToothId],
    problems: list[str],
) -> None:
    if listed is None:
        return
    if not isinstance(listed, (list, tuple)):
        problems.append(f"{kind} implant teeth is not a list")
        return
    for raw_tooth in listed:
        tooth = str(raw_tooth)
        if is_primary_code(tooth):
            tooth = permanent_equivalent(tooth)
            primary.append(tooth)
        if not is_tooth_id(tooth):
            problems.append(f"ignored unknown tooth {tooth}")
            continue
        # A tooth listed under both modes keeps the first (single) selection.
        if teeth[tooth] == DEFAULT_KIND:
            teeth[tooth] = kind


def decode(data: dict[str, Any]) -> DecodeResult[ImplantState]:
    shape = detect_shape(data)
    problems: list[str] = []
    primary: list[Any] = list(data.get("primaryTeeth") or [])

    if shape is PayloadShape.compressed:
        default = decode_default(
            data, "default", coerce=_kind, fallback=DEFAULT_KIND, problems=problems
        )
        teeth = expand_tooth_map(default, data.get("exceptions"), coerce=_kind, problems=problems)
        grafting = _decode_bool(data.get("boneGrafting"), problems, "boneGrafting")
        timing = _decode_timing(data.get("timing"), problems)
    elif shape is PayloadShape.legacy:
        teeth = complete_tooth_map({}, DEFAULT_KIND)
        _mark_teeth(teeth, data.get("singleImplantTeeth"), "single", primary, problems)
        _mark_teeth(teeth, data.get("bridgeImplantTeeth"), "bridge", primary, problems)
        grafting = _decode_bool(data.get("boneGraftingPlanned"), problems, "boneGraftingPlanned")
        timing = _decode_timing(data.get("timingMode"), problems)
    else:
        return DecodeResult(ImplantState(), shape, ["unrecognized implant payload"])

    state = ImplantState(
        teeth=teeth,
        bone_grafting_planned=grafting,
        timing=timing,
        notes=data.get("notes"),
        primary_teeth=normalize_primary_teeth(primary),
    )
    return DecodeResult(state, shape, problems)
