import pytest

from dental_chart.services.teeth import (
    ALL_TOOTH_IDS,
    PRIMARY_TOOTH_MAP,
    all_tooth_ids,
    display_id,
    is_primary_code,
    is_tooth_id,
    normalize_primary_teeth,
    permanent_equivalent,
    primary_equivalent,
    relabel,
    sort_teeth,
)


def test_all_tooth_ids_canonical_order():
    teeth = all_tooth_ids()
    assert len(teeth) == 32
    assert len(set(teeth)) == 32
    assert teeth[:8] == ["11", "12", "13", "14", "15", "16", "17", "18"]
    assert teeth[8] == "21"
    assert teeth[16] == "31"
    assert teeth[24] == "41"
    assert teeth[-1] == "48"


def test_all_tooth_ids_returns_fresh_list():
    teeth = all_tooth_ids()
    teeth.append("99")
    assert len(all_tooth_ids()) == 32
    assert "99" not in ALL_TOOTH_IDS


@pytest.mark.parametrize(
    ("tooth", "expected"),
    [
        ("11", "51"),
        ("15", "55"),
        ("21", "61"),
        ("34", "74"),
        ("45", "85"),
        ("16", None),
        ("18", None),
        ("48", None),
    ],
)
def test_primary_equivalent(tooth: str, expected: str | None):
    assert primary_equivalent(tooth) == expected


def test_primary_table_covers_positions_one_to_five():
    assert len(PRIMARY_TOOTH_MAP) == 20
    with pytest.raises(TypeError):
        PRIMARY_TOOTH_MAP["16"] = "56"  # type: ignore[index]


@pytest.mark.parametrize(
    ("tooth", "is_primary", "expected"),
    [
        ("11", True, "51"),
        ("11", False, "11"),
        ("17", True, "17"),
        ("42", True, "82"),
    ],
)
def test_display_id(tooth: str, is_primary: bool, expected: str):
    assert display_id(tooth, is_primary) == expected


def test_relabel_uses_primary_list():
    assert relabel("11", ["11"]) == "51"
    assert relabel("12", ["11"]) == "12"


def test_identifier_predicates():
    assert is_tooth_id("11")
    assert not is_tooth_id("51")
    assert not is_tooth_id(11)
    assert is_primary_code("51")
    assert not is_primary_code("56")
    assert permanent_equivalent("63") == "23"
    assert permanent_equivalent("11") is None


def test_sort_teeth_canonical_order():
    assert sort_teeth(["41", "26", "11", "38"]) == ["11", "26", "38", "41"]


def test_normalize_primary_teeth_accepts_both_spellings():
    assert normalize_primary_teeth(["52", "11", "11", "17", "x"]) == ["11", "12"]
    assert normalize_primary_teeth(None) == []
