"""
Tests for immutable compositions.
"""

import warnings

import pytest
from uncertainties import ufloat

from epmaquant.atomic.elements import as_element
from epmaquant.material.composition import Composition, to_ufloat


def test_pure():
    comp = Composition.pure("Fe")
    assert comp.name == "Pure Fe"
    assert comp.weight_fraction("Fe") == 1.0
    assert comp.elements == [as_element("Fe")]


def test_elements_sorted_by_atomic_number():
    comp = Composition({"Ni": 0.5, "O": 0.1, "Fe": 0.4})
    assert [e.symbol for e in comp.elements] == ["O", "Fe", "Ni"]
    assert comp.name == "OFeNi"


def test_from_stoichiometry_sio2():
    sio2 = Composition.from_stoichiometry({"Si": 1, "O": 2}, name="SiO2")
    assert sio2.sum_weight_fraction() == pytest.approx(1.0)
    expected = 28.085 / (28.085 + 2 * 15.999)
    assert sio2.weight_fraction("Si") == pytest.approx(expected)


def test_from_stoichiometry_rejects_bad_counts():
    with pytest.raises(ValueError):
        Composition.from_stoichiometry({"Si": -1, "O": 2})
    with pytest.raises(ValueError):
        Composition.from_stoichiometry({"Si": 0})


def test_total_is_not_forced_to_one():
    comp = Composition({"Fe": 0.6, "Ni": 0.5})
    assert comp.sum_weight_fraction() == pytest.approx(1.1)
    assert comp.weight_fraction("Fe", normalized=True) == pytest.approx(0.6 / 1.1)


def test_normalized_scales_uncertainty():
    comp = Composition({"Fe": ufloat(0.8, 0.02), "Ni": 0.2})
    norm = comp.normalized()
    assert norm.sum_weight_fraction() == pytest.approx(1.0)
    # Already summing to one, so unchanged
    assert norm.weight_fraction_u("Fe").std_dev == pytest.approx(0.02, rel=1e-6)


def test_absent_element_is_zero():
    comp = Composition({"Fe": 1.0})
    assert comp.weight_fraction("Ni") == 0.0
    assert "Ni" not in comp
    assert "Fe" in comp
    assert "NotAnElement" not in comp


def test_functional_updates_do_not_mutate():
    comp = Composition({"Fe": 0.5})
    updated = comp.with_element("Ni", 0.5)
    assert "Ni" not in comp
    assert updated.weight_fraction("Ni") == 0.5
    assert "Fe" not in updated.without_element("Fe")
    assert comp.renamed("Alloy").name == "Alloy"


def test_atomic_fractions():
    comp = Composition({"Fe": 55.845, "Ni": 58.693})
    assert comp.atomic_fraction("Fe") == pytest.approx(0.5)
    assert sum(comp.atomic_fractions().values()) == pytest.approx(1.0)


def test_mean_atomic_number():
    comp = Composition({"Fe": 0.5, "Ni": 0.5})
    assert comp.mean_atomic_number() == pytest.approx(27.0)


def test_equality_and_hash():
    a = Composition({"Fe": 0.5, "Ni": 0.5})
    b = Composition({"Ni": 0.5, "Fe": 0.5}, name="other name")
    assert a == b
    assert hash(a) == hash(b)
    assert a != Composition({"Fe": 0.5, "Ni": ufloat(0.5, 0.01)})


def test_as_dict():
    comp = Composition({"Fe": 0.3, "Ni": 0.3})
    assert comp.as_dict() == {"Fe": 0.3, "Ni": 0.3}
    assert comp.as_dict(normalized=True) == pytest.approx({"Fe": 0.5, "Ni": 0.5})


def test_to_ufloat_keeps_ufloat():
    u = ufloat(1.0, 0.1)
    assert to_ufloat(u) is u
    assert to_ufloat(2, 0.5).std_dev == 0.5


def test_exact_values_do_not_warn():
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        comp = Composition({"Fe": 0.5, "Ni": 0.5})
        assert to_ufloat(0.0).std_dev == 0.0
    assert comp.weight_fraction_u("Fe").std_dev == 0.0
