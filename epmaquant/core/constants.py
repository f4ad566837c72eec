"""
Physical constants and numerical defaults for EPMA quantification.

Energies are in keV, angles in degrees and mass-thickness in g/cm^2 unless
otherwise specified.
"""

import numpy as np

# ============================================================================
# Measurement Matching Tolerances
# ============================================================================

# Standard and unknown beam energies must agree to within this amount
BEAM_ENERGY_TOLERANCE_KEV = 0.01

# Standard and unknown take-off angles must agree to within this amount
TAKE_OFF_ANGLE_TOLERANCE_DEG = 1.0

# ============================================================================
# Bulk Solver Defaults
# ============================================================================

# Iteration cap and relative change in mass fraction at which to stop
DEFAULT_MAX_ITERATIONS = 10
DEFAULT_CONVERGENCE_TOLERANCE = 1.0e-3

# Minimum family-normalized line weight used by the iterative solver
DEFAULT_SOLVER_MIN_WEIGHT = 0.01

# Minimum family-normalized line weight used by the standard cache
DEFAULT_ZAF_MIN_WEIGHT = 0.1

# Overvoltage required before a line family is preferred over the next one
DEFAULT_MIN_OVERVOLTAGE = 1.5

# Bounds on a single mass fraction estimate inside the iteration
MASS_FRACTION_MIN = 0.0
MASS_FRACTION_MAX = 10.0

# Raw k-ratios below -KRATIO_NEGATIVE_SIGMA * sigma are flagged
KRATIO_NEGATIVE_SIGMA = 2.0

# ============================================================================
# Layered (thin film) Solver Defaults
# ============================================================================

DEFAULT_LAYER_MAX_ITERATIONS = 10
DEFAULT_LAYER_TOLERANCE = 1.0e-4

# ============================================================================
# Numerical Constants
# ============================================================================

# Small number for numerical stability
EPSILON = np.finfo(np.float64).eps
