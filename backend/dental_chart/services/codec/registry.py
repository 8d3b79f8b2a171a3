"""Per-domain codec lookup and the JSON entry points used by the stores."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Callable, Mapping

from pydantic import BaseModel

from dental_chart.models.assessment import AssessmentDomain
from dental_chart.services.codec import dentition, denture, extractions, fillings, hygiene, implant
from dental_chart.services.codec.common import (
    DecodeResult,
    PayloadShape,
    dumps_payload,
    parse_json_object,
)

logger = logging.getLogger("dental_chart.codec")


@dataclass(frozen=True)
class DomainCodec:
    domain: AssessmentDomain
    state_type: type[BaseModel]
    encode: Callable[[Any], dict[str, Any]]
    decode: Callable[[dict[str, Any]], DecodeResult]
    detect_shape: Callable[[dict[str, Any]], PayloadShape]

    def default_state(self) -> BaseModel:
        return self.state_type()


CODECS: Mapping[AssessmentDomain, DomainCodec] = {
    AssessmentDomain.dentition: DomainCodec(
        AssessmentDomain.dentition,
        dentition.DentitionState,
        dentition.encode,
        dentition.decode,
        dentition.detect_shape,
    ),
    AssessmentDomain.hygiene: DomainCodec(
        AssessmentDomain.hygiene,
        hygiene.HygieneState,
        hygiene.encode,
        hygiene.decode,
        hygiene.detect_shape,
    ),
    AssessmentDomain.fillings: DomainCodec(
        AssessmentDomain.fillings,
        fillings.FillingsState,
        fillings.encode,
        fillings.decode,
        fillings.detect_shape,
    ),
    AssessmentDomain.extractions: DomainCodec(
        AssessmentDomain.extractions,
        extractions.ExtractionsState,
        extractions.encode,
        extractions.decode,
        extractions.detect_shape,
    ),
    AssessmentDomain.denture: DomainCodec(
        AssessmentDomain.denture,
        denture.DentureState,
        denture.encode,
        denture.decode,
        denture.detect_shape,
    ),
    AssessmentDomain.implant: DomainCodec(
        AssessmentDomain.implant,
        implant.ImplantState,
        implant.encode,
        implant.decode,
        implant.detect_shape,
    ),
}


def get_codec(domain: AssessmentDomain | str) -> DomainCodec:
    return CODECS[AssessmentDomain(domain)]


def coerce_state(domain: AssessmentDomain | str, state: Any) -> BaseModel:
    codec = get_codec(domain)
    # Models are dumped and re-validated too: in-place edits to their dicts
    # bypass field validators.
    if isinstance(state, BaseModel):
        state = state.model_dump()
    return codec.state_type.model_validate(state)


def encode_state(domain: AssessmentDomain | str, state: Any) -> str:
    """Serialize a domain state to its compressed JSON text.

    Missing teeth are filled with the domain default before compressing.
    """
    codec = get_codec(domain)
    return dumps_payload(codec.encode(coerce_state(domain, state)))


def decode_payload(domain: AssessmentDomain | str, raw: Any) -> DecodeResult:
    """Decode stored text into a full state; never raises for bad payloads."""
    codec = get_codec(domain)
    data = parse_json_object(raw)
    if data is None:
        return DecodeResult(
            codec.default_state(), PayloadShape.unknown, ["payload is not a JSON object"]
        )
    try:
        return codec.decode(data)
    except (TypeError, ValueError, KeyError, AttributeError) as exc:
        logger.warning(
            "Codec for %s failed on a %s payload: %s",
            codec.domain.value,
            codec.detect_shape(data).value,
            type(exc).__name__,
        )
        return DecodeResult(
            codec.default_state(), PayloadShape.unknown, [f"decode failed: {type(exc).__name__}"]
        )
