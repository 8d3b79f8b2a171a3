import json

import pytest

from dental_chart.services.codec import dentition
from dental_chart.services.codec.common import PayloadShape
from dental_chart.services.codec.dentition import DentitionState
from dental_chart.services.codec.registry import decode_payload, encode_state
from dental_chart.services.teeth import ALL_TOOTH_IDS


def _teeth(**statuses):
    teeth = {tooth: "present" for tooth in ALL_TOOTH_IDS}
    teeth.update({tooth.lstrip("t"): status for tooth, status in statuses.items()})
    return teeth


def test_single_missing_tooth_encodes_as_one_exception():
    state = DentitionState(teeth=_teeth(t24="fully-missing"))
    payload = json.loads(encode_state("dentition", state))
    assert payload == {"v": 2, "default": "present", "exceptions": {"24": "fully-missing"}}

    result = decode_payload("dentition", json.dumps(payload))
    assert result.shape is PayloadShape.compressed
    assert not result.degraded
    assert result.state.teeth["24"] == "fully-missing"
    assert all(result.state.teeth[tooth] == "present" for tooth in ALL_TOOTH_IDS if tooth != "24")


def test_round_trip_mixed_chart():
    teeth = _teeth(t11="crown-missing", t18="fully-missing", t28="fully-missing", t36="roots-only")
    state = DentitionState(teeth=teeth, primary_teeth=["11", "12"])
    decoded = decode_payload("dentition", encode_state("dentition", state)).state
    assert decoded.teeth == teeth
    assert decoded.primary_teeth == ["11", "12"]


def test_reencode_decodes_to_same_chart():
    teeth = {tooth: "fully-missing" for tooth in ALL_TOOTH_IDS}
    for tooth in ALL_TOOTH_IDS[:16]:
        teeth[tooth] = "present"
    first = decode_payload("dentition", encode_state("dentition", DentitionState(teeth=teeth)))
    second = decode_payload("dentition", encode_state("dentition", first.state))
    assert first.state.teeth == second.state.teeth == teeth


def test_tie_prefers_present_as_default():
    teeth = {tooth: "fully-missing" for tooth in ALL_TOOTH_IDS}
    for tooth in ALL_TOOTH_IDS[16:]:
        teeth[tooth] = "present"
    payload = json.loads(encode_state("dentition", DentitionState(teeth=teeth)))
    assert payload["default"] == "present"
    assert len(payload["exceptions"]) == 16


def test_uniform_chart_has_empty_exceptions():
    payload = json.loads(encode_state("dentition", DentitionState()))
    assert payload["exceptions"] == {}


def test_partial_chart_is_completed_before_encoding():
    payload = json.loads(encode_state("dentition", {"teeth": {"24": "fully-missing"}}))
    assert payload["exceptions"] == {"24": "fully-missing"}


@pytest.mark.parametrize(
    "payload",
    [
        {"exceptions": {"24": "fully-missing"}, "defaultState": "present"},
        {
            "savedWithPrimaryNumbers": True,
            "originalToothStates": _teeth(t24="fully-missing"),
            "toothStates": {},
        },
        {"toothStates": _teeth(t24="fully-missing")},
        _teeth(t24="fully-missing"),
    ],
    ids=["optimised-without-default", "primary-numbers", "tracked", "flat"],
)
def test_legacy_shapes_decode_to_full_chart(payload):
    result = decode_payload("dentition", json.dumps(payload))
    assert result.shape is PayloadShape.legacy
    assert result.state.teeth == _teeth(t24="fully-missing")


def test_legacy_primary_codes_fold_back_to_permanent():
    teeth = _teeth()
    del teeth["11"]
    teeth["51"] = "crown-missing"
    result = decode_payload("dentition", json.dumps({"toothStates": teeth}))
    assert result.state.teeth["11"] == "crown-missing"
    assert result.state.primary_teeth == ["11"]


def test_missing_default_is_degraded_not_raised():
    result = decode_payload("dentition", json.dumps({"v": 2, "exceptions": {"24": "fully-missing"}}))
    assert result.shape is PayloadShape.compressed
    assert result.degraded
    assert result.state.teeth["11"] == "present"
    assert result.state.teeth["24"] == "fully-missing"


def test_non_object_exceptions_is_degraded():
    result = decode_payload("dentition", json.dumps({"v": 2, "default": "present", "exceptions": 7}))
    assert result.degraded
    assert set(result.state.teeth.values()) == {"present"}


def test_unknown_status_value_is_degraded():
    result = decode_payload(
        "dentition", json.dumps({"v": 2, "default": "present", "exceptions": {"24": "gone"}})
    )
    assert result.degraded
    assert result.state.teeth["24"] == "present"


def test_unrecognized_shape():
    assert dentition.detect_shape({"notes": "hello"}) is PayloadShape.unknown
    result = decode_payload("dentition", json.dumps({"notes": "hello"}))
    assert result.shape is PayloadShape.unknown
    assert result.degraded
