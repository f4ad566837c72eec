"""
Tests for elements and x-ray line data.
"""

import pytest

from epmaquant.atomic import xray_data
from epmaquant.atomic.elements import (
    ELEMENT_COUNT,
    PERIODIC_TABLE,
    O,
    as_element,
    by_atomic_number,
    by_symbol,
)
from epmaquant.atomic.structures import LineFamily, XRayTransitionSet


def test_periodic_table_is_complete():
    assert len(PERIODIC_TABLE) == ELEMENT_COUNT
    assert by_atomic_number(26).symbol == "Fe"
    assert by_symbol("fe").atomic_number == 26
    assert O.atomic_number == 8


def test_as_element_accepts_symbol_number_and_element():
    fe = by_symbol("Fe")
    assert as_element("Fe") is fe
    assert as_element(26) is fe
    assert as_element(fe) is fe


def test_as_element_rejects_bad_input():
    with pytest.raises(ValueError):
        as_element("Xx")
    with pytest.raises(ValueError):
        as_element(0)
    with pytest.raises(TypeError):
        as_element(1.5)


def test_elements_order_by_atomic_number():
    assert sorted([as_element("Ni"), as_element("O"), as_element("Fe")]) == [
        as_element("O"),
        as_element("Fe"),
        as_element("Ni"),
    ]


def test_transition_set_name_and_family():
    fe_k = xray_data.transition_set("Fe", "K")
    assert fe_k.name == "Fe K"
    assert fe_k.family == LineFamily.K
    assert fe_k.weighiest_transition.name == "Ka1"
    assert len(fe_k) == 3


def test_l_family_combines_subshells():
    fe_l = xray_data.transition_set("Fe", LineFamily.L)
    assert {t.name for t in fe_l} == {"La", "Lb1"}
    assert fe_l.weighiest_transition.name == "La"


def test_normalized_weight():
    si_k = xray_data.transition_set("Si", "K")
    ka2 = next(t for t in si_k if t.name == "Ka2")
    assert si_k.normalized_weight(ka2) == pytest.approx(0.5)


def test_transition_set_equality_and_hash():
    a = xray_data.transition_set("Ni", "K")
    b = xray_data.transition_set("Ni", "K")
    assert a == b
    assert hash(a) == hash(b)
    assert len({a, b}) == 1


def test_transition_set_rejects_mixed_elements():
    trs = list(xray_data.transition_set("Fe", "K")) + list(xray_data.transition_set("Ni", "K"))
    with pytest.raises(ValueError, match="share an element"):
        XRayTransitionSet(trs)


def test_transition_set_rejects_empty():
    with pytest.raises(ValueError):
        XRayTransitionSet([])


def test_transition_sets_sort_by_element_then_family():
    sets = [
        xray_data.transition_set("Ni", "K"),
        xray_data.transition_set("Fe", "L"),
        xray_data.transition_set("Fe", "K"),
    ]
    assert [s.name for s in sorted(sets)] == ["Fe K", "Fe L", "Ni K"]


def test_missing_family_raises():
    with pytest.raises(KeyError):
        xray_data.transition_set("Si", "L")


def test_missing_element_raises():
    with pytest.raises(KeyError):
        xray_data.transitions("U")


def test_families_and_all_sets():
    assert xray_data.families("W") == [LineFamily.L, LineFamily.M]
    assert [s.family for s in xray_data.all_transition_sets("Fe")] == [LineFamily.K, LineFamily.L]


def test_lines_lie_below_their_edges():
    for elm in xray_data.available_elements():
        for t in xray_data.transitions(elm):
            assert t.energy_keV < t.edge_energy_keV


def test_overvoltage():
    shell = xray_data.transition_set("Fe", "K").weighiest_transition.shell
    assert shell.overvoltage(15.0) == pytest.approx(15.0 / 7.112)
