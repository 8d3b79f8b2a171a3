"""Readable summaries of stored assessments.

Every payload is first decoded to its full chart, whatever shape it was
stored in, so the aggregation below never looks at the wire format. Tooth
references are relabeled to primary codes for teeth flagged as primary.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable

from dental_chart.models.assessment import AssessmentDomain
from dental_chart.services.codec.common import PayloadShape
from dental_chart.services.codec.dentition import DentitionState
from dental_chart.services.codec.denture import DentureState
from dental_chart.services.codec.extractions import ExtractionsState
from dental_chart.services.codec.fillings import FillingsState, ToothFindings
from dental_chart.services.codec.hygiene import DepositFinding, HygieneState
from dental_chart.services.codec.implant import ImplantState
from dental_chart.services.codec.registry import decode_payload
from dental_chart.services.snapshot_store import AssessmentSnapshot
from dental_chart.services.teeth import ALL_TOOTH_IDS, ToothId, relabel, sort_teeth

logger = logging.getLogger("dental_chart.reports")

FALLBACK_SUMMARY = "Assessment completed"
UNPARSABLE_DETAIL = "Unable to parse details"
UNKNOWN_TYPE_DETAIL = "Unknown assessment type"

CALCULUS_LABELS = {
    "none": "No Calculus",
    "light": "Light Calculus",
    "moderate": "Moderate Calculus",
    "heavy": "Heavy Calculus",
}
PLAQUE_LABELS = {
    "none": "No Plaque",
    "light": "Light Plaque",
    "moderate": "Moderate Plaque",
    "heavy": "Heavy Plaque",
}
AAP_STAGE_LABELS = {
    "1": "Stage I - Initial",
    "2": "Stage II - Moderate",
    "3": "Stage III - Severe",
    "4": "Stage IV - Advanced",
}
AAP_GRADE_LABELS = {
    "A": "Grade A - Slow",
    "B": "Grade B - Moderate",
    "C": "Grade C - Rapid",
    "D": "Grade D - Necrotizing",
}


@dataclass
class ParsedAssessment:
    summary: str
    details: list[str] = field(default_factory=list)
    shape: PayloadShape = PayloadShape.unknown
    degraded: bool = False


def placeholder(detail: str = UNPARSABLE_DETAIL) -> ParsedAssessment:
    return ParsedAssessment(FALLBACK_SUMMARY, [detail], PayloadShape.unknown, True)


def title_words(value: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in value.split("-") if word)


def _teeth_text(teeth: Iterable[ToothId], primary_teeth: list[ToothId]) -> str:
    labels = [relabel(tooth, primary_teeth) for tooth in sort_teeth(teeth)]
    return ", ".join(labels) if labels else "None"


def _group_line(label: str, teeth: list[ToothId], primary_teeth: list[ToothId]) -> str:
    return f"{label} ({len(teeth)}): {_teeth_text(teeth, primary_teeth)}"


def _primary_line(primary_teeth: list[ToothId]) -> list[str]:
    if not primary_teeth:
        return []
    return [f"Primary teeth ({len(primary_teeth)}): {_teeth_text(primary_teeth, primary_teeth)}"]


def summarize_dentition(state: DentitionState) -> tuple[str, list[str]]:
    primary = state.primary_teeth
    groups: dict[str, list[ToothId]] = {
        "present": [],
        "crown-missing": [],
        "roots-only": [],
        "fully-missing": [],
    }
    for tooth in ALL_TOOTH_IDS:
        groups[state.teeth[tooth]].append(tooth)

    present = groups["present"]
    if len(present) == len(ALL_TOOTH_IDS):
        present_line = f"Present teeth ({len(present)}): All teeth present"
    else:
        present_line = _group_line("Present teeth", present, primary)
    details = [
        present_line,
        _group_line("Crown missing", groups["crown-missing"], primary),
        _group_line("Roots only", groups["roots-only"], primary),
        _group_line("Fully missing", groups["fully-missing"], primary),
        *_primary_line(primary),
    ]
    summary = f"{len(present)} present, {len(groups['fully-missing'])} missing"
    if groups["crown-missing"]:
        summary += f", {len(groups['crown-missing'])} crown missing"
    return summary, details


def _deposit_lines(name: str, finding: DepositFinding, labels: dict[str, str]) -> list[str]:
    lines = [f"{name}: {labels.get(finding.level, finding.level)}"]
    if finding.level != "none" and finding.distribution:
        lines.append(f"  Distribution: {title_words(finding.distribution)}")
        if finding.distribution == "localized" and finding.quadrants:
            quadrants = ", ".join(title_words(quadrant) for quadrant in finding.quadrants)
            lines.append(f"  Quadrants: {quadrants}")
    return lines


def summarize_hygiene(state: HygieneState) -> tuple[str, list[str]]:
    primary = state.primary_teeth
    details = _deposit_lines("CALCULUS", state.calculus, CALCULUS_LABELS)
    details += _deposit_lines("PLAQUE", state.plaque, PLAQUE_LABELS)

    depths = state.probing_depths
    counts: dict[int, int] = {}
    for tooth in ALL_TOOTH_IDS:
        counts[depths[tooth]] = counts.get(depths[tooth], 0) + 1
    usual = min(counts, key=lambda depth: (-counts[depth], depth))
    details.append(f"PROBING DEPTH (default: {usual}mm):")
    severe = [tooth for tooth in ALL_TOOTH_IDS if depths[tooth] >= 7]
    moderate = [tooth for tooth in ALL_TOOTH_IDS if 5 <= depths[tooth] <= 6]
    mild = [tooth for tooth in ALL_TOOTH_IDS if depths[tooth] == 4]
    if severe:
        details.append(f"  Severe (7+mm): teeth {_teeth_text(severe, primary)}")
    if moderate:
        details.append(f"  Moderate (5-6mm): teeth {_teeth_text(moderate, primary)}")
    if mild:
        details.append(f"  Mild (4mm): teeth {_teeth_text(mild, primary)}")

    bleeding = [tooth for tooth in ALL_TOOTH_IDS if state.bleeding.get(tooth)]
    if bleeding:
        percent = len(bleeding) / len(ALL_TOOTH_IDS) * 100
        details.append(
            f"BLEEDING: Yes - teeth {_teeth_text(bleeding, primary)} "
            f"({len(bleeding)} of {len(ALL_TOOTH_IDS)} teeth, {percent:.1f}%)"
        )
    else:
        details.append("BLEEDING: No")

    if state.aap_stage or state.aap_grade:
        details.append("AAP CLASSIFICATION:")
        if state.aap_stage:
            details.append(f"  {AAP_STAGE_LABELS.get(state.aap_stage, f'Stage {state.aap_stage}')}")
        if state.aap_grade:
            details.append(f"  {AAP_GRADE_LABELS.get(state.aap_grade, f'Grade {state.aap_grade}')}")

    summary = f"Calculus: {state.calculus.level}, Plaque: {state.plaque.level}"
    if state.aap_stage:
        summary += f", AAP Stage {state.aap_stage}"
    return summary, details


def _surfaces(surfaces: list[str]) -> str:
    return "".join(surfaces) or "unspecified"


def _tooth_finding_lines(label: str, findings: ToothFindings) -> list[str]:
    lines = [f"Tooth {label}:"]
    if findings.has_filling:
        lines.append(
            f"  Existing filling: {findings.filling_material or 'unknown'}, "
            f"surfaces: {_surfaces(findings.filling_surfaces)}"
        )
    if findings.needs_filling:
        lines.append(
            f"  Filling needed: {findings.needed_filling_material or 'unknown'}, "
            f"surfaces: {_surfaces(findings.needed_filling_surfaces)}"
        )
    if findings.has_crown:
        lines.append(f"  Existing crown: {findings.crown_material or 'unknown'}")
    if findings.needs_crown:
        lines.append(f"  Crown needed: {findings.needed_crown_material or 'unknown'}")
    if findings.has_root_canal:
        lines.append("  Existing root canal: Yes")
    if findings.needs_retreatment:
        lines.append("  Root canal retreatment needed: Yes")
    if findings.has_cavities:
        lines.append(f"  Cavities: {_surfaces(findings.cavity_surfaces)} surfaces")
    if findings.is_broken:
        lines.append(f"  Broken/cracked: {_surfaces(findings.broken_surfaces)} surfaces")
    if findings.needs_root_canal:
        lines.append("  Root canal needed: Yes")
        if findings.pulp_diagnosis:
            lines.append(f"    Pulp diagnosis: {findings.pulp_diagnosis}")
        if findings.apical_diagnosis:
            lines.append(f"    Apical diagnosis: {findings.apical_diagnosis}")
    return lines


def summarize_fillings(state: FillingsState) -> tuple[str, list[str]]:
    primary = state.primary_teeth
    flagged = [tooth for tooth in ALL_TOOTH_IDS if state.teeth[tooth].has_findings()]
    details: list[str] = []
    if not flagged:
        details.append("No restorative issues found")
    else:
        details.append(f"{len(flagged)} teeth with findings:")
        for tooth in flagged:
            label = relabel(tooth, primary)
            details.append("\n".join(_tooth_finding_lines(label, state.teeth[tooth])))
    details += _primary_line(primary)

    fillings = sum(1 for tooth in ALL_TOOTH_IDS if state.teeth[tooth].has_filling)
    cavities = sum(1 for tooth in ALL_TOOTH_IDS if state.teeth[tooth].has_cavities)
    rct_needed = sum(1 for tooth in ALL_TOOTH_IDS if state.teeth[tooth].needs_root_canal)
    summary = f"{fillings} fillings, {cavities} cavities"
    if rct_needed:
        summary += f", {rct_needed} need RCT"
    return summary, details


def summarize_extractions(state: ExtractionsState) -> tuple[str, list[str]]:
    primary = state.primary_teeth
    marked = [tooth for tooth in ALL_TOOTH_IDS if state.teeth[tooth] != "none"]
    if not marked:
        return "No extractions needed", ["No teeth marked for extraction"]

    def reason(value: str) -> list[ToothId]:
        return [tooth for tooth in marked if state.teeth[tooth] == value]

    details = [
        f"Total extractions needed: {len(marked)}",
        _group_line("Loose teeth", reason("loose"), primary),
        _group_line("Root tips", reason("root-tip"), primary),
        _group_line("Non-restorable", reason("non-restorable"), primary),
    ]
    return f"{len(marked)} teeth marked for extraction", details


def summarize_denture(state: DentureState) -> tuple[str, list[str]]:
    details: list[str] = []
    if state.denture_type != "none":
        details.append(f"Denture recommended: {state.denture_type}")
    else:
        details.append("No denture needed")
    relines = state.selected_options()
    if relines:
        details.append(f"Reline services: {', '.join(title_words(name) for name in relines)}")
    if state.notes:
        details.append(f"Notes: {state.notes}")
    if state.denture_type == "none":
        return "No denture needed", details
    return f"{state.denture_type} recommended", details


def summarize_implant(state: ImplantState) -> tuple[str, list[str]]:
    primary = state.primary_teeth
    single = state.teeth_of_kind("single")
    bridge = state.teeth_of_kind("bridge")
    details: list[str] = []
    if single:
        details.append(f"Single implants: {_teeth_text(single, primary)}")
    if bridge:
        details.append(f"Bridge implants: {_teeth_text(bridge, primary)}")
    if state.bone_grafting_planned:
        details.append("Bone grafting: Planned")
    if state.timing:
        details.append(f"Timing: {state.timing.capitalize()} placement")
    if state.notes:
        details.append(f"Notes: {state.notes}")
    if not details:
        details.append("No implants planned")
    total = len(single) + len(bridge)
    summary = f"{total} implants planned" if total else "No implants planned"
    return summary, details


SUMMARIZERS: dict[AssessmentDomain, Callable[[Any], tuple[str, list[str]]]] = {
    AssessmentDomain.dentition: summarize_dentition,
    AssessmentDomain.hygiene: summarize_hygiene,
    AssessmentDomain.fillings: summarize_fillings,
    AssessmentDomain.extractions: summarize_extractions,
    AssessmentDomain.denture: summarize_denture,
    AssessmentDomain.implant: summarize_implant,
}


def parse_assessment(
    raw: Any, domain: AssessmentDomain | str, *, snapshot_id: int | None = None
) -> ParsedAssessment:
    """Summarize one stored payload. Never raises for bad or unknown data."""
    try:
        domain = AssessmentDomain(str(getattr(domain, "value", domain)).lower())
    except ValueError:
        return placeholder(UNKNOWN_TYPE_DETAIL)

    result = decode_payload(domain, raw)
    if result.shape is PayloadShape.unknown:
        logger.warning(
            "Unreadable %s snapshot %s; showing placeholder", domain.value, snapshot_id
        )
        return placeholder()
    if result.problems:
        logger.warning(
            "Degraded decode of %s snapshot %s (%s problems)",
            domain.value,
            snapshot_id,
            len(result.problems),
        )
    summary, details = SUMMARIZERS[domain](result.state)
    return ParsedAssessment(summary, details, result.shape, result.degraded)


def parse_snapshot(snapshot: AssessmentSnapshot) -> ParsedAssessment:
    return parse_assessment(snapshot.encoded_payload, snapshot.domain, snapshot_id=snapshot.id)
