import json

import pytest

from dental_chart.services.codec.common import PayloadShape
from dental_chart.services.codec.denture import DentureState
from dental_chart.services.codec.implant import ImplantState
from dental_chart.services.codec.registry import decode_payload, encode_state, get_codec
from dental_chart.services.teeth import ALL_TOOTH_IDS


def test_denture_relines_become_presence_list():
    state = DentureState(
        denture_type="upper-partial-acrylic",
        options={"upper-soft-reline": True, "lower-soft-reline": False},
        notes="Check clasp fit",
    )
    payload = json.loads(encode_state("denture", state))
    assert payload == {
        "v": 2,
        "type": "upper-partial-acrylic",
        "relines": ["upper-soft-reline"],
        "notes": "Check clasp fit",
    }
    assert decode_payload("denture", json.dumps(payload)).state == state


def test_denture_legacy_shape():
    raw = {
        "selectedDentureType": "lower-complete",
        "dentureOptions": {"upper-soft-reline": False, "lower-soft-reline": True},
        "notes": "",
    }
    result = decode_payload("denture", json.dumps(raw))
    assert result.shape is PayloadShape.legacy
    assert result.state.denture_type == "lower-complete"
    assert result.state.selected_options() == ["lower-soft-reline"]
    assert result.state.notes == ""


def test_denture_unknown_type_is_degraded():
    result = decode_payload("denture", json.dumps({"v": 2, "type": "titanium"}))
    assert result.degraded
    assert result.state.denture_type == "none"


def test_denture_keeps_extra_options():
    state = DentureState(options={"hard-reline": True})
    assert state.options["upper-soft-reline"] is False
    payload = json.loads(encode_state("denture", state))
    assert payload["relines"] == ["hard-reline"]
    assert decode_payload("denture", json.dumps(payload)).state.options["hard-reline"] is True


def test_unselected_extra_option_is_not_kept():
    state = DentureState(options={"hard-reline": False, "lower-soft-reline": True})
    assert state.options == {"upper-soft-reline": False, "lower-soft-reline": True}
    result = decode_payload("denture", encode_state("denture", state))
    assert not result.degraded
    assert result.state == state


def test_implant_round_trip():
    teeth = {tooth: "none" for tooth in ALL_TOOTH_IDS}
    teeth.update({"36": "single", "45": "bridge", "46": "bridge"})
    state = ImplantState(teeth=teeth, bone_grafting_planned=True, timing="delayed", notes="CBCT first")
    payload = json.loads(encode_state("implant", state))
    assert payload["default"] == "none"
    assert payload["timing"] == "DL"
    assert payload["boneGrafting"] is True
    assert decode_payload("implant", json.dumps(payload)).state == state


def test_implant_legacy_lists():
    raw = {
        "implantMode": "bridge",
        "singleImplantTeeth": ["36", "11"],
        "bridgeImplantTeeth": ["44", "45", "36"],
        "boneGraftingPlanned": False,
        "timingMode": "immediate",
        "notes": "",
    }
    result = decode_payload("implant", json.dumps(raw))
    assert result.shape is PayloadShape.legacy
    assert result.state.teeth_of_kind("single") == ["11", "36"]
    assert result.state.teeth_of_kind("bridge") == ["44", "45"]
    assert result.state.timing == "immediate"


def test_implant_legacy_primary_code():
    result = decode_payload("implant", json.dumps({"singleImplantTeeth": ["75"]}))
    assert result.state.teeth["35"] == "single"
    assert result.state.primary_teeth == ["35"]


@pytest.mark.parametrize("domain", ["dentition", "hygiene", "fillings", "extractions", "denture", "implant"])
def test_default_state_round_trips(domain: str):
    codec = get_codec(domain)
    result = decode_payload(domain, encode_state(domain, codec.default_state()))
    assert result.shape is PayloadShape.compressed
    assert not result.degraded
    assert result.state == codec.default_state()
