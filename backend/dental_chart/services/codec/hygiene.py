"""Periodontal / hygiene chart codec.

Probing depths compress as default + exceptions, bleeding on probing is
stored as the list of bleeding teeth, and quadrant / distribution enums use
two-letter codes.
"""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel, Field, field_validator

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
    expand_legacy_tooth_map,
    expand_tooth_map,
    flags_from_presence,
    full_chart,
    looks_like_tooth_map,
    optional_text,
    presence_list,
)
from dental_chart.services.teeth import (
    ALL_TOOTH_IDS,
    QUADRANT_NAMES,
    QUADRANTS,
    ToothId,
    normalize_primary_teeth,
)

DEPOSIT_LEVELS: tuple[str, ...] = ("none", "light", "moderate", "heavy")
DEFAULT_PROBING_DEPTH = 2
MAX_PROBING_DEPTH = 20

# Older charts stored one plaque/calculus severity per tooth instead of the
# mouth-level deposit findings.
TOOTH_SEVERITIES: tuple[str, ...] = (
    "normal",
    "light-plaque",
    "moderate-plaque",
    "heavy-plaque",
    "calculus",
)
PLAQUE_SEVERITY_LEVELS = {
    "light-plaque": "light",
    "moderate-plaque": "moderate",
    "heavy-plaque": "heavy",
}

QUADRANT_CODES = ShortCodeTable(
    {
        "upper-right": "UR",
        "upper-left": "UL",
        "lower-left": "LL",
        "lower-right": "LR",
    }
)

DISTRIBUTION_CODES = ShortCodeTable(
    {
        "generalized": "GN",
        "localized": "LC",
    }
)


def _depth(value: Any) -> int:
    if isinstance(value, bool):
        raise ValueError(f"not a depth: {value!r}")
    depth = int(value)
    if depth < 0 or depth > MAX_PROBING_DEPTH:
        raise ValueError(f"depth out of range: {depth}")
    return depth


class DepositFinding(BaseModel):
    level: str = "none"
    distribution: str | None = None
    quadrants: list[str] = Field(default_factory=list)

    @field_validator("distribution", mode="before")
    @classmethod
    def _blank_distribution(cls, value):
        return optional_text(value)


class HygieneState(ToothChartState):
    calculus: DepositFinding = Field(default_factory=DepositFinding)
    plaque: DepositFinding = Field(default_factory=DepositFinding)
    probing_depths: dict[ToothId, int] = Field(default_factory=full_chart(DEFAULT_PROBING_DEPTH))
    bleeding: dict[ToothId, bool] = Field(default_factory=full_chart(False))
    aap_stage: str | None = None
    aap_grade: str | None = None

    @field_validator("probing_depths")
    @classmethod
    def _depths_in_range(cls, value):
        return {tooth: _depth(depth) for tooth, depth in value.items()}

    @field_validator("aap_stage", "aap_grade", mode="before")
    @classmethod
    def _blank_aap(cls, value):
        return optional_text(value)


def _depth_preference(teeth: Mapping[ToothId, int]) -> list[int]:
    # Shallower (healthier) depths win a frequency tie.
    return sorted(set(teeth.values()))


def _encode_deposit(finding: DepositFinding) -> dict[str, Any]:
    encoded: dict[str, Any] = {"level": finding.level}
    if finding.distribution:
        encoded["distribution"] = DISTRIBUTION_CODES.shorten(finding.distribution)
    if finding.quadrants:
        encoded["quadrants"] = [QUADRANT_CODES.shorten(quadrant) for quadrant in finding.quadrants]
    return encoded


def _decode_deposit(raw: Any, problems: list[str], label: str) -> DepositFinding:
    if raw is None:
        return DepositFinding()
    if not isinstance(raw, Mapping):
        problems.append(f"{label} is not an object")
        return DepositFinding()
    return _deposit_from_fields(
        raw.get("level"), raw.get("distribution"), raw.get("quadrants"), problems, label
    )


def _deposit_from_fields(
    level: Any, distribution: Any, quadrants: Any, problems: list[str], label: str
) -> DepositFinding:
    if quadrants is None:
        quadrants = []
    if not isinstance(quadrants, (list, tuple)):
        problems.append(f"{label} quadrants is not a list")
        quadrants = []
    distribution_text = optional_text(distribution)
    return DepositFinding(
        level=optional_text(level) or "none",
        distribution=DISTRIBUTION_CODES.expand(distribution_text) if distribution_text else None,
        quadrants=[QUADRANT_CODES.expand(str(quadrant)) for quadrant in quadrants],
    )


def encode(state: HygieneState) -> dict[str, Any]:
    depths = complete_tooth_map(state.probing_depths, DEFAULT_PROBING_DEPTH)
    default_depth, depth_exceptions = compress_tooth_map(
        depths, preference=_depth_preference(depths)
    )
    payload: dict[str, Any] = {
        "v": PAYLOAD_VERSION,
        "calculus": _encode_deposit(state.calculus),
        "plaque": _encode_deposit(state.plaque),
        "probingDepths": {"default": default_depth, "exceptions": depth_exceptions},
    }
    bleeding = presence_list(complete_tooth_map(state.bleeding, False))
    if bleeding:
        payload["bleedingTeeth"] = bleeding
    aap: dict[str, str] = {}
    if state.aap_stage:
        aap["stage"] = state.aap_stage
    if state.aap_grade:
        aap["grade"] = state.aap_grade
    if aap:
        payload["aap"] = aap
    if state.primary_teeth:
        payload["primaryTeeth"] = list(state.primary_teeth)
    return payload


def detect_shape(data: dict[str, Any]) -> PayloadShape:
    if data.get("v") == PAYLOAD_VERSION:
        return PayloadShape.compressed
    depths = data.get("probingDepths")
    if isinstance(depths, Mapping) and ("default" in depths or "exceptions" in depths):
        return PayloadShape.compressed
    if isinstance(data.get("calculus"), Mapping) or isinstance(data.get("plaque"), Mapping):
        return PayloadShape.compressed
    if any(
        key in data
        for key in ("calculusLevel", "plaqueLevel", "bleedingOnProbing", "aapStage", "aapGrade")
    ) or isinstance(depths, Mapping):
        return PayloadShape.legacy
    if looks_like_tooth_map(data):
        return PayloadShape.legacy
    return PayloadShape.unknown


def decode(data: dict[str, Any]) -> DecodeResult[HygieneState]:
    shape = detect_shape(data)
    if shape is PayloadShape.compressed:
        return _decode_compressed(data)
    if shape is PayloadShape.legacy and looks_like_tooth_map(data):
        return _decode_tooth_severities(data)
    if shape is PayloadShape.legacy:
        return _decode_legacy(data)
    return DecodeResult(HygieneState(), shape, ["unrecognized hygiene payload"])


def _decode_compressed(data: dict[str, Any]) -> DecodeResult[HygieneState]:
    problems: list[str] = []
    depths_raw = data.get("probingDepths")
    if depths_raw is None:
        depths_raw = {"default": DEFAULT_PROBING_DEPTH}
    if not isinstance(depths_raw, Mapping):
        problems.append("probingDepths is not an object")
        depths_raw = {}
    default_depth = decode_default(
        depths_raw, "default", coerce=_depth, fallback=DEFAULT_PROBING_DEPTH, problems=problems
    )
    depths = expand_tooth_map(
        default_depth, depths_raw.get("exceptions"), coerce=_depth, problems=problems
    )
    aap = data.get("aap") or {}
    if not isinstance(aap, Mapping):
        problems.append("aap is not an object")
        aap = {}
    state = HygieneState(
        calculus=_decode_deposit(data.get("calculus"), problems, "calculus"),
        plaque=_decode_deposit(data.get("plaque"), problems, "plaque"),
        probing_depths=depths,
        bleeding=flags_from_presence(data.get("bleedingTeeth"), problems=problems),
        aap_stage=optional_text(aap.get("stage")),
        aap_grade=optional_text(aap.get("grade")),
        primary_teeth=normalize_primary_teeth(data.get("primaryTeeth")),
    )
    return DecodeResult(state, PayloadShape.compressed, problems)


def _decode_legacy(data: dict[str, Any]) -> DecodeResult[HygieneState]:
    problems: list[str] = []
    primary: list[Any] = list(data.get("primaryTeeth") or [])
    depths = {}
    bleeding = {}
    if data.get("probingDepths") is not None:
        depths, renumbered = expand_legacy_tooth_map(
            data["probingDepths"], DEFAULT_PROBING_DEPTH, coerce=_depth, problems=problems
        )
        primary.extend(renumbered)
    if data.get("bleedingOnProbing") is not None:
        bleeding, renumbered = expand_legacy_tooth_map(
            data["bleedingOnProbing"], False, coerce=coerce_bool, problems=problems
        )
        primary.extend(renumbered)
    state = HygieneState(
        calculus=_deposit_from_fields(
            data.get("calculusLevel"),
            data.get("calculusDistribution"),
            data.get("calculusQuadrants"),
            problems,
            "calculus",
        ),
        plaque=_deposit_from_fields(
            data.get("plaqueLevel"),
            data.get("plaqueDistribution"),
            data.get("plaqueQuadrants"),
            problems,
            "plaque",
        ),
        probing_depths=complete_tooth_map(depths, DEFAULT_PROBING_DEPTH),
        bleeding=complete_tooth_map(bleeding, False),
        aap_stage=optional_text(data.get("aapStage")),
        aap_grade=optional_text(data.get("aapGrade")),
        primary_teeth=normalize_primary_teeth(primary),
    )
    return DecodeResult(state, PayloadShape.legacy, problems)


def _calculus_level(count: int) -> str:
    if count <= 3:
        return "light"
    if count < 16:
        return "moderate"
    return "heavy"


def _deposit_from_teeth(teeth: list[ToothId], level: str) -> DepositFinding:
    if not teeth:
        return DepositFinding()
    quadrants = sorted({int(tooth[0]) for tooth in teeth})
    return DepositFinding(
        level=level,
        distribution="generalized" if len(quadrants) == len(QUADRANTS) else "localized",
        quadrants=[QUADRANT_NAMES[quadrant] for quadrant in quadrants],
    )


def _decode_tooth_severities(data: dict[str, Any]) -> DecodeResult[HygieneState]:
    """Summarise a per-tooth severity chart into calculus and plaque findings.

    Plaque takes the heaviest severity charted on any tooth; calculus is
    graded by how many teeth carry it. Both list the quadrants involved.
    """
    problems: list[str] = []
    severities, primary = expand_legacy_tooth_map(
        data, "normal", coerce=choice(TOOTH_SEVERITIES), problems=problems
    )
    plaque_teeth = [tooth for tooth in ALL_TOOTH_IDS if severities[tooth] in PLAQUE_SEVERITY_LEVELS]
    calculus_teeth = [tooth for tooth in ALL_TOOTH_IDS if severities[tooth] == "calculus"]
    plaque_level = "none"
    for severity, level in PLAQUE_SEVERITY_LEVELS.items():
        if any(severities[tooth] == severity for tooth in plaque_teeth):
            plaque_level = level
    state = HygieneState(
        calculus=_deposit_from_teeth(calculus_teeth, _calculus_level(len(calculus_teeth))),
        plaque=_deposit_from_teeth(plaque_teeth, plaque_level),
        primary_teeth=normalize_primary_teeth(primary),
    )
    return DecodeResult(state, PayloadShape.legacy, problems)
