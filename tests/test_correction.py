"""
Tests for matrix corrections and mass absorption coefficients.
"""

import math

import pytest

from epmaquant.atomic import xray_data
from epmaquant.core.exceptions import CorrectionDomainError, InvalidConfigurationError
from epmaquant.core.strategy import AlgorithmRole, Strategy
from epmaquant.material.composition import Composition
from epmaquant.quant.conditions import MeasurementConditions
from epmaquant.quant.correction import (
    CorrectionContext,
    CorrectionOutcome,
    NullCorrection,
    PhilibertCorrection,
    create_correction,
)
from epmaquant.quant.mac import ConstantMAC, TabulatedMAC


@pytest.fixture
def fe_ni():
    return Composition({"Fe": 0.5, "Ni": 0.5})


# ----------------------------------------------------------------------------
# Mass absorption coefficients
# ----------------------------------------------------------------------------


def test_constant_mac(fe_ni, fe_k):
    mac = ConstantMAC(120.0)
    assert mac.compute(fe_ni, fe_k.weighiest_transition) == pytest.approx(120.0)


def test_constant_mac_rejects_negative():
    with pytest.raises(InvalidConfigurationError):
        ConstantMAC(-1.0)


def test_tabulated_mac_mixture_rule(fe_k):
    mac = TabulatedMAC({("Fe", "K"): {"Fe": 70.0, "Ni": 90.0}})
    comp = Composition({"Fe": 0.6, "Ni": 0.2})
    # Normalized mass fractions 0.75 / 0.25
    assert mac.compute(comp, fe_k.weighiest_transition) == pytest.approx(0.75 * 70.0 + 0.25 * 90.0)


def test_tabulated_mac_missing_entry(fe_k, fe_ni):
    mac = TabulatedMAC({("Fe", "K"): {"Fe": 70.0}})
    with pytest.raises(InvalidConfigurationError, match="No mass absorption coefficient"):
        mac.compute(fe_ni, fe_k.weighiest_transition)
    with_default = TabulatedMAC({("Fe", "K"): {"Fe": 70.0}}, default=100.0)
    assert with_default.compute(fe_ni, fe_k.weighiest_transition) == pytest.approx(85.0)


def test_mac_of_empty_composition(fe_k):
    assert ConstantMAC(10.0).compute(Composition(), fe_k.weighiest_transition) == 0.0


# ----------------------------------------------------------------------------
# Correction algorithms
# ----------------------------------------------------------------------------


def test_outcome():
    assert CorrectionOutcome.success(0.9).ok
    failed = CorrectionOutcome.failure("edge above beam")
    assert not failed.ok
    assert failed.message == "edge above beam"


def test_null_correction_is_identity(fe_ni, fe_k, conditions):
    ca = NullCorrection()
    assert ca.zaf(fe_ni, fe_k.weighiest_transition, conditions) == 1.0
    k = ca.kratio(Composition.pure("Fe"), fe_ni, fe_k.weighiest_transition, conditions)
    assert k.nominal_value == pytest.approx(0.5)


def test_initialize_reports_change(fe_ni, fe_k, conditions):
    ca = NullCorrection()
    shell = fe_k.weighiest_transition.shell
    assert ca.initialize(fe_ni, shell, conditions)
    assert not ca.initialize(fe_ni, shell, conditions)
    assert ca.initialize(Composition({"Fe": 0.4, "Ni": 0.6}), shell, conditions)


def test_initialize_requires_element(fe_k, conditions):
    with pytest.raises(InvalidConfigurationError):
        NullCorrection().initialize(Composition.pure("Ni"), fe_k.weighiest_transition.shell, conditions)


def test_edge_above_beam_is_domain_error(fe_ni, fe_k):
    low = MeasurementConditions(7.0, 40.0)
    ca = PhilibertCorrection()
    with pytest.raises(CorrectionDomainError):
        ca.zaf(fe_ni, fe_k.weighiest_transition, low)
    outcome = ca.try_zaf(fe_ni, fe_k.weighiest_transition, low)
    assert not outcome.ok
    assert "beam energy" in outcome.message


def test_used_before_initialize(fe_k):
    with pytest.raises(InvalidConfigurationError):
        NullCorrection().correction_factors(fe_k.weighiest_transition)


def test_wrong_shell_after_initialize(fe_ni, fe_k, ni_k, conditions):
    ca = NullCorrection()
    ca.initialize(fe_ni, fe_k.weighiest_transition.shell, conditions)
    with pytest.raises(InvalidConfigurationError):
        ca.correction_factors(ni_k.weighiest_transition)


def test_bound_context_matches_private_evaluation(fe_ni, fe_k, conditions):
    ca = PhilibertCorrection()
    xrt = fe_k.weighiest_transition
    ca.initialize(fe_ni, xrt.shell, conditions)
    bound = ca.compute_zaf_correction(xrt)
    # Evaluating another material leaves the bound context alone
    other = ca.zaf(Composition({"Fe": 0.1, "Ni": 0.9}), xrt, conditions)
    assert ca.compute_zaf_correction(xrt) == bound
    assert ca.zaf(fe_ni, xrt, conditions) == pytest.approx(bound)
    assert other != pytest.approx(bound)


def test_context_parameters(fe_ni, fe_k, conditions):
    ctx = PhilibertCorrection().context(fe_ni, fe_k.weighiest_transition.shell, conditions)
    assert isinstance(ctx, CorrectionContext)
    assert ctx.composition == fe_ni
    assert ctx.params["sigma"] == pytest.approx(4.5e5 / (15.0**1.65 - 7.112**1.65))
    assert NullCorrection().context(fe_ni, fe_k.weighiest_transition.shell, conditions).params == {}


def test_philibert_absorption_factor(fe_k, conditions):
    pure_fe = Composition.pure("Fe")
    ca = PhilibertCorrection()
    xrt = fe_k.weighiest_transition
    zaf = ca.zaf(pure_fe, xrt, conditions)

    sigma = 4.5e5 / (15.0**1.65 - 7.112**1.65)
    chi = 100.0 / math.sin(math.radians(40.0))
    h = 1.2 * 55.845 / 26**2
    x = chi / sigma
    expected = (1 + h) / ((1 + x) * (1 + h * (1 + x)))
    assert zaf == pytest.approx(expected)
    assert 0.0 < zaf < 1.0


def test_philibert_uses_mac_strategy(fe_k, conditions):
    pure_fe = Composition.pure("Fe")
    xrt = fe_k.weighiest_transition
    weak = PhilibertCorrection(Strategy({AlgorithmRole.MASS_ABSORPTION: ConstantMAC(10.0)}))
    strong = PhilibertCorrection(Strategy({AlgorithmRole.MASS_ABSORPTION: ConstantMAC(1000.0)}))
    assert weak.zaf(pure_fe, xrt, conditions) > strong.zaf(pure_fe, xrt, conditions)


def test_philibert_zero_mac_is_unity(fe_k, conditions):
    ca = PhilibertCorrection(Strategy({AlgorithmRole.MASS_ABSORPTION: ConstantMAC(0.0)}))
    assert ca.zaf(Composition.pure("Fe"), fe_k.weighiest_transition, conditions) == pytest.approx(1.0)


def test_relative_zaf(fe_ni, fe_k, conditions):
    ca = PhilibertCorrection()
    z, a, f, zaf = ca.relative_zaf(fe_ni, fe_k.weighiest_transition, conditions, Composition.pure("Fe"))
    assert z == 1.0
    assert f == 1.0
    assert zaf == pytest.approx(a)


def test_kratio_requires_element_in_standard(fe_ni, fe_k, conditions):
    with pytest.raises(InvalidConfigurationError):
        NullCorrection().kratio(Composition.pure("Ni"), fe_ni, fe_k.weighiest_transition, conditions)


def test_create_correction():
    assert isinstance(create_correction("Philibert"), PhilibertCorrection)
    assert isinstance(create_correction("null"), NullCorrection)
    with pytest.raises(InvalidConfigurationError, match="Unknown correction"):
        create_correction("pap")


def test_light_element_l_line_at_low_voltage():
    """Fe L is still computable at 5 keV where Fe K is not excited."""
    low = MeasurementConditions(5.0, 40.0)
    fe_l = xray_data.transition_set("Fe", "L")
    assert PhilibertCorrection().try_zaf(Composition.pure("Fe"), fe_l.weighiest_transition, low).ok
