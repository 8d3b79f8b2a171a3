from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel, Field, field_validator

from dental_chart.services.codec.common import (
    PAYLOAD_VERSION,
    DecodeResult,
    PayloadShape,
    choice,
    coerce_bool,
    optional_text,
)

DENTURE_TYPES: tuple[str, ...] = (
    "none",
    "upper-partial-acrylic",
    "upper-partial-cast",
    "lower-partial-acrylic",
    "lower-partial-cast",
    "upper-immediate-complete",
    "upper-complete",
    "lower-immediate-complete",
    "lower-complete",
)
DEFAULT_DENTURE_TYPE = "none"
RELINE_OPTIONS: tuple[str, ...] = ("upper-soft-reline", "lower-soft-reline")

_denture_type = choice(DENTURE_TYPES)


def default_options() -> dict[str, bool]:
    return {name: False for name in RELINE_OPTIONS}


class DentureState(BaseModel):
    denture_type: str = DEFAULT_DENTURE_TYPE
    options: dict[str, bool] = Field(default_factory=default_options)
    notes: str = ""

    @field_validator("denture_type")
    @classmethod
    def _known_type(cls, value: str) -> str:
        return _denture_type(value)

    @field_validator("options")
    @classmethod
    def _known_options_present(cls, value: dict[str, bool]) -> dict[str, bool]:
        # Relines are stored as a presence list: an unselected extra option is
        # the same as an absent one.
        options = default_options()
        for name, selected in value.items():
            if selected or name in options:
                options[name] = selected
        return options

    @field_validator("notes", mode="before")
    @classmethod
    def _notes_text(cls, value):
        return optional_text(value) or ""

    def selected_options(self) -> list[str]:
        """True options, known relines first then any extras by name."""
        known = [name for name in RELINE_OPTIONS if self.options.get(name)]
        extras = sorted(
            name
            for name, selected in self.options.items()
            if selected and name not in RELINE_OPTIONS
        )
        return known + extras


def encode(state: DentureState) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "v": PAYLOAD_VERSION,
        "type": state.denture_type,
        "relines": state.selected_options(),
    }
    if state.notes:
        payload["notes"] = state.notes
    return payload


def detect_shape(data: dict[str, Any]) -> PayloadShape:
    if data.get("v") == PAYLOAD_VERSION or "type" in data or "relines" in data:
        return PayloadShape.compressed
    if "selectedDentureType" in data or "dentureOptions" in data:
        return PayloadShape.legacy
    return PayloadShape.unknown


def _decode_type(value: Any, problems: list[str]) -> str:
    if value is None:
        problems.append("missing denture type")
        return DEFAULT_DENTURE_TYPE
    try:
        return _denture_type(value)
    except ValueError as exc:
        problems.append(f"denture type: {exc}")
        return DEFAULT_DENTURE_TYPE


def decode(data: dict[str, Any]) -> DecodeResult[DentureState]:
    shape = detect_shape(data)
    problems: list[str] = []
    options = default_options()

    if shape is PayloadShape.compressed:
        denture_type = _decode_type(data.get("type"), problems)
        relines = data.get("relines") or []
        if isinstance(relines, (list, tuple)):
            options.update({str(name): True for name in relines})
        else:
            problems.append("relines is not a list")
    elif shape is PayloadShape.legacy:
        denture_type = _decode_type(data.get("selectedDentureType", DEFAULT_DENTURE_TYPE), problems)
        raw_options = data.get("dentureOptions") or {}
        if isinstance(raw_options, Mapping):
            for name, selected in raw_options.items():
                try:
                    options[str(name)] = coerce_bool(selected)
                except ValueError as exc:
                    problems.append(f"option {name}: {exc}")
        else:
            problems.append("dentureOptions is not an object")
    else:
        return DecodeResult(DentureState(), shape, ["unrecognized denture payload"])

    state = DentureState(denture_type=denture_type, options=options, notes=data.get("notes"))
    return DecodeResult(state, shape, problems)
