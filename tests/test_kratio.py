"""
Tests for KRatioSet.
"""

import pytest
from uncertainties import ufloat

from epmaquant.atomic import xray_data
from epmaquant.quant.kratio import KRatioSet


@pytest.fixture
def fe_l():
    return xray_data.transition_set("Fe", "L")


def test_add_and_query(fe_k):
    krs = KRatioSet()
    krs.add(fe_k, 0.45, 0.01)
    assert krs.kratio(fe_k) == 0.45
    assert krs.kratio_u(fe_k).std_dev == 0.01
    assert fe_k in krs
    assert len(krs) == 1
    assert krs.is_available("Fe")
    assert not krs.is_available("Ni")


def test_add_replaces(fe_k):
    krs = KRatioSet()
    krs.add(fe_k, 0.45)
    krs.add(fe_k, ufloat(0.5, 0.02))
    assert krs.kratio(fe_k) == 0.5
    assert len(krs) == 1


def test_negative_uncertainty_rejected(fe_k):
    with pytest.raises(ValueError):
        KRatioSet().add(fe_k, 0.1, -0.01)


def test_negative_kratio_is_clamped_but_keeps_sigma(fe_k):
    krs = KRatioSet()
    krs.add(fe_k, -0.003, 0.002)
    assert krs.raw_kratio(fe_k).nominal_value == -0.003
    assert krs.kratio(fe_k) == 0.0
    assert krs.kratio_u(fe_k).std_dev == 0.002
    assert krs.kratio_sum() == 0.0


def test_absent_set_is_zero(fe_k):
    assert KRatioSet().kratio(fe_k) == 0.0


def test_kratio_for_transition(fe_k, ni_k):
    krs = KRatioSet()
    krs.add(fe_k, 0.4)
    assert krs.kratio_for_transition(fe_k.weighiest_transition) == 0.4
    assert krs.kratio_for_transition(ni_k.weighiest_transition) == 0.0


def test_elements_and_transition_sets(fe_k, fe_l, ni_k):
    krs = KRatioSet()
    krs.add(ni_k, 0.5)
    krs.add(fe_l, 0.3)
    krs.add(fe_k, 0.4)
    assert [e.symbol for e in krs.elements] == ["Fe", "Ni"]
    assert krs.transition_sets("Fe") == [fe_k, fe_l]
    assert list(krs) == [fe_k, fe_l, ni_k]


def test_optimal_datum_smallest_uncertainty(fe_k, fe_l):
    krs = KRatioSet()
    krs.add(fe_k, 0.4, 0.02)
    krs.add(fe_l, 0.3, 0.01)
    assert krs.optimal_datum("Fe") == fe_l
    assert list(krs.optimal_kratio_set()) == [fe_l]


def test_preferred_datum_k_before_l(fe_k, fe_l):
    krs = KRatioSet()
    krs.add(fe_k, 0.4, 0.02)
    krs.add(fe_l, 0.3, 0.01)
    # U(Fe K) at 15 keV = 2.1 > 1.5
    assert krs.preferred_datum("Fe", 15.0, 1.5) == fe_k


def test_preferred_datum_falls_back_to_l(fe_k, fe_l):
    krs = KRatioSet()
    krs.add(fe_k, 0.4)
    krs.add(fe_l, 0.3)
    # U(Fe K) at 10 keV = 1.41 < 1.5
    assert krs.preferred_datum("Fe", 10.0, 1.5) == fe_l


def test_preferred_datum_highest_overvoltage_when_nothing_passes():
    w_l = xray_data.transition_set("W", "L")
    w_m = xray_data.transition_set("W", "M")
    krs = KRatioSet()
    krs.add(w_l, 0.4)
    krs.add(w_m, 0.3)
    # U(W L) = 1.08 and U(W M) = 6.08, both below 7
    assert krs.preferred_datum("W", 11.0, 7.0) == w_m


def test_preferred_datum_absent_element(fe_k):
    krs = KRatioSet()
    krs.add(fe_k, 0.4)
    assert krs.preferred_datum("Ni", 15.0, 1.5) is None


def test_difference(fe_k, ni_k):
    a = KRatioSet()
    a.add(fe_k, 0.4)
    a.add(ni_k, 0.5)
    b = KRatioSet()
    b.add(fe_k, 0.1)
    assert a.difference(b) == pytest.approx(0.3)


def test_copy_is_independent(fe_k, ni_k):
    a = KRatioSet()
    a.add(fe_k, 0.4)
    b = a.copy()
    b.add(ni_k, 0.5)
    assert ni_k not in a
    b.remove(fe_k)
    assert fe_k in a


def test_preferred_kratio_set_keeps_raw_values(fe_k, fe_l, ni_k):
    krs = KRatioSet()
    krs.add(fe_k, -0.002, 0.001)
    krs.add(fe_l, 0.3)
    krs.add(ni_k, 0.5)
    preferred = krs.preferred_kratio_set(15.0, 1.5)
    assert list(preferred) == [fe_k, ni_k]
    assert preferred.raw_kratio(fe_k).nominal_value == -0.002
