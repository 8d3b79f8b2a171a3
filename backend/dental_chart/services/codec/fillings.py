"""Restorative findings codec.

Each tooth carries a ``ToothFindings`` record. The wire form of a record keeps
only its non-empty parts (the same nested shape the mobile client has always
written under ``teethWithIssues``), and the per-tooth records then compress as
default + exceptions like every other chart.
"""

from __future__ import annotations

from typing import Any, Mapping

from pydantic import BaseModel, Field, field_validator, model_validator

from dental_chart.services.codec.common import (
    PAYLOAD_VERSION,
    DecodeResult,
    PayloadShape,
    ShortCodeTable,
    ToothChartState,
    coerce_bool,
    complete_tooth_map,
    compress_tooth_map,
    decode_default,
    expand_legacy_tooth_map,
    expand_tooth_map,
    full_chart,
    optional_text,
)
from dental_chart.services.teeth import ToothId, normalize_primary_teeth

SURFACES: tuple[str, ...] = ("M", "D", "L", "B", "O")

MATERIAL_CODES = ShortCodeTable(
    {
        "amalgam": "AM",
        "composite": "CO",
        "glass-ionomer": "GI",
        "porcelain": "PO",
        "zirconia": "ZR",
        "gold": "AU",
        "pfm": "PF",
        "temporary": "TM",
    }
)


def normalize_surfaces(value: Any) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        value = list(value)
    if not isinstance(value, (list, tuple)):
        raise ValueError(f"surfaces must be a list: {value!r}")
    seen: list[str] = []
    for item in value:
        surface = str(item).strip().upper()
        if surface and surface not in seen:
            seen.append(surface)
    known = [surface for surface in SURFACES if surface in seen]
    return known + [surface for surface in seen if surface not in SURFACES]


# Detail fields only mean something while their finding is set.
FINDING_DETAILS: dict[str, tuple[str, ...]] = {
    "has_filling": ("filling_material", "filling_surfaces"),
    "needs_filling": ("needed_filling_material", "needed_filling_surfaces"),
    "has_crown": ("crown_material",),
    "needs_crown": ("needed_crown_material",),
    "has_cavities": ("cavity_surfaces",),
    "is_broken": ("broken_surfaces",),
    "needs_root_canal": ("pulp_diagnosis", "apical_diagnosis"),
}


class ToothFindings(BaseModel):
    has_filling: bool = False
    filling_material: str | None = None
    filling_surfaces: list[str] = Field(default_factory=list)
    needs_filling: bool = False
    needed_filling_material: str | None = None
    needed_filling_surfaces: list[str] = Field(default_factory=list)
    has_crown: bool = False
    crown_material: str | None = None
    needs_crown: bool = False
    needed_crown_material: str | None = None
    has_root_canal: bool = False
    needs_retreatment: bool = False
    has_cavities: bool = False
    cavity_surfaces: list[str] = Field(default_factory=list)
    is_broken: bool = False
    broken_surfaces: list[str] = Field(default_factory=list)
    needs_root_canal: bool = False
    pulp_diagnosis: str | None = None
    apical_diagnosis: str | None = None

    @field_validator(
        "filling_surfaces",
        "needed_filling_surfaces",
        "cavity_surfaces",
        "broken_surfaces",
        mode="before",
    )
    @classmethod
    def _normalize_surfaces(cls, value):
        return normalize_surfaces(value)

    @field_validator(
        "filling_material",
        "needed_filling_material",
        "crown_material",
        "needed_crown_material",
        "pulp_diagnosis",
        "apical_diagnosis",
        mode="before",
    )
    @classmethod
    def _blank_text(cls, value):
        return optional_text(value)

    @model_validator(mode="after")
    def _drop_details_without_finding(self):
        for flag, details in FINDING_DETAILS.items():
            if getattr(self, flag):
                continue
            for name in details:
                if getattr(self, name):
                    setattr(self, name, [] if name.endswith("_surfaces") else None)
        return self

    def has_findings(self) -> bool:
        return bool(compact_findings(self))


class FillingsState(ToothChartState):
    teeth: dict[ToothId, ToothFindings] = Field(
        default_factory=full_chart(ToothFindings()), validate_default=True
    )

    @field_validator("teeth", mode="after")
    @classmethod
    def _own_findings(cls, value: dict[ToothId, ToothFindings]):
        # full_chart() shares one default instance; give each tooth its own.
        return {tooth: findings.model_copy(deep=True) for tooth, findings in value.items()}


def _restoration(material: str | None, surfaces: list[str] | None = None) -> dict[str, Any]:
    encoded: dict[str, Any] = {}
    if material:
        encoded["type"] = MATERIAL_CODES.shorten(material)
    if surfaces:
        encoded["surfaces"] = list(surfaces)
    return encoded


def compact_findings(findings: ToothFindings) -> dict[str, Any]:
    compact: dict[str, Any] = {}
    if findings.has_filling:
        compact["fillings"] = _restoration(findings.filling_material, findings.filling_surfaces)
    if findings.needs_filling:
        compact["neededFillings"] = _restoration(
            findings.needed_filling_material, findings.needed_filling_surfaces
        )
    if findings.has_crown:
        compact["crown"] = _material_only(findings.crown_material)
    if findings.needs_crown:
        compact["neededCrown"] = _material_only(findings.needed_crown_material)
    if findings.has_root_canal:
        compact["rootCanal"] = {"existing": True}
    if findings.needs_retreatment:
        compact["needsNewRootCanal"] = True
    if findings.has_cavities:
        compact["cavities"] = {"surfaces": list(findings.cavity_surfaces)}
    if findings.is_broken:
        compact["broken"] = {"surfaces": list(findings.broken_surfaces)}
    if findings.needs_root_canal:
        diagnosis: dict[str, str] = {}
        if findings.pulp_diagnosis:
            diagnosis["pulpDiagnosis"] = findings.pulp_diagnosis
        if findings.apical_diagnosis:
            diagnosis["apicalDiagnosis"] = findings.apical_diagnosis
        compact["rootCanalNeeded"] = diagnosis
    return compact


def _material_only(material: str | None) -> dict[str, Any]:
    if not material:
        return {}
    return {"material": MATERIAL_CODES.shorten(material)}


def _section(raw: Mapping[str, Any], key: str) -> Mapping[str, Any] | None:
    value = raw.get(key)
    if value is None or value is False:
        return None
    if value is True:
        return {}
    if not isinstance(value, Mapping):
        raise ValueError(f"{key} is not an object")
    return value


def _expand_material(value: Any) -> str | None:
    text = optional_text(value)
    return MATERIAL_CODES.expand(text) if text else None


def findings_from_compact(raw: Any) -> ToothFindings:
    if not isinstance(raw, Mapping):
        raise ValueError(f"tooth findings must be an object: {raw!r}")
    fields: dict[str, Any] = {}
    filling = _section(raw, "fillings")
    if filling is not None:
        fields.update(
            has_filling=True,
            filling_material=_expand_material(filling.get("type")),
            filling_surfaces=filling.get("surfaces"),
        )
    needed_filling = _section(raw, "neededFillings")
    if needed_filling is not None:
        fields.update(
            needs_filling=True,
            needed_filling_material=_expand_material(needed_filling.get("type")),
            needed_filling_surfaces=needed_filling.get("surfaces"),
        )
    crown = _section(raw, "crown")
    if crown is not None:
        fields.update(has_crown=True, crown_material=_expand_material(crown.get("material")))
    needed_crown = _section(raw, "neededCrown")
    if needed_crown is not None:
        fields.update(
            needs_crown=True, needed_crown_material=_expand_material(needed_crown.get("material"))
        )
    root_canal = _section(raw, "rootCanal")
    if root_canal is not None:
        fields["has_root_canal"] = coerce_bool(root_canal.get("existing", False))
        if root_canal.get("needed"):
            fields["needs_root_canal"] = True
    if raw.get("needsNewRootCanal"):
        fields["needs_retreatment"] = True
    cavities = _section(raw, "cavities")
    if cavities is not None:
        fields.update(has_cavities=True, cavity_surfaces=cavities.get("surfaces"))
    broken = _section(raw, "broken")
    if broken is not None:
        fields.update(is_broken=True, broken_surfaces=broken.get("surfaces"))
    needed_rct = _section(raw, "rootCanalNeeded")
    if needed_rct is not None:
        fields.update(
            needs_root_canal=True,
            pulp_diagnosis=needed_rct.get("pulpDiagnosis"),
            apical_diagnosis=needed_rct.get("apicalDiagnosis"),
        )
    return ToothFindings(**fields)


def findings_from_flat(raw: Any) -> ToothFindings:
    """Read the per-tooth record written by the first chart screen."""
    if not isinstance(raw, Mapping):
        raise ValueError(f"tooth state must be an object: {raw!r}")
    return ToothFindings(
        has_filling=coerce_bool(raw.get("hasFillings", False)),
        filling_material=_expand_material(raw.get("fillingType")),
        filling_surfaces=raw.get("fillingSurfaces"),
        needs_filling=coerce_bool(raw.get("needsFillings", False)),
        needed_filling_material=_expand_material(raw.get("neededFillingType")),
        needed_filling_surfaces=raw.get("neededFillingSurfaces"),
        has_crown=coerce_bool(raw.get("hasCrowns", False)),
        crown_material=_expand_material(raw.get("crownMaterial")),
        needs_crown=coerce_bool(raw.get("needsCrown", False)),
        needed_crown_material=_expand_material(raw.get("neededCrownMaterial")),
        has_root_canal=coerce_bool(raw.get("hasExistingRootCanal", False)),
        needs_retreatment=coerce_bool(raw.get("needsNewRootCanal", False)),
        has_cavities=coerce_bool(raw.get("hasCavities", False)),
        cavity_surfaces=raw.get("cavitySurfaces"),
        is_broken=coerce_bool(raw.get("isBroken", False)),
        broken_surfaces=raw.get("brokenSurfaces"),
        needs_root_canal=coerce_bool(raw.get("needsRootCanal", False)),
        pulp_diagnosis=raw.get("pulpDiagnosis"),
        apical_diagnosis=raw.get("apicalDiagnosis"),
    )


def encode(state: FillingsState) -> dict[str, Any]:
    teeth = complete_tooth_map(state.teeth, ToothFindings())
    compact = {tooth: compact_findings(findings) for tooth, findings in teeth.items()}
    default, exceptions = compress_tooth_map(compact, preference=("{}",))
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
    if "teethWithIssues" in data or "originalTeethStates" in data or "teethStates" in data:
        return PayloadShape.legacy
    return PayloadShape.unknown


def decode(data: dict[str, Any]) -> DecodeResult[FillingsState]:
    shape = detect_shape(data)
    problems: list[str] = []
    primary: list[Any] = list(data.get("primaryTeeth") or [])

    if shape is PayloadShape.compressed:
        default = decode_default(
            data,
            "default",
            coerce=findings_from_compact,
            fallback=ToothFindings(),
            problems=problems,
        )
        teeth = expand_tooth_map(
            default, data.get("exceptions"), coerce=findings_from_compact, problems=problems
        )
    elif shape is PayloadShape.legacy:
        if "teethWithIssues" in data:
            teeth, renumbered = expand_legacy_tooth_map(
                data["teethWithIssues"],
                ToothFindings(),
                coerce=findings_from_compact,
                problems=problems,
            )
        else:
            raw = data.get("originalTeethStates", data.get("teethStates"))
            teeth, renumbered = expand_legacy_tooth_map(
                raw, ToothFindings(), coerce=findings_from_flat, problems=problems
            )
        primary.extend(renumbered)
    else:
        return DecodeResult(FillingsState(), shape, ["unrecognized fillings payload"])

    state = FillingsState(teeth=teeth, primary_teeth=normalize_primary_teeth(primary))
    return DecodeResult(state, shape, problems)
