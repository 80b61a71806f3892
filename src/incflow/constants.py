"""Numerical and physical constants: single source of truth.

Import from here instead of defining local constants.
"""

import numpy as np
import scipy.constants as _sc

# Numerical
eps = float(np.finfo(np.float64).eps)   # Machine epsilon (float64)
baseline_floor = 1.0e-15                # Smallest sum|u| treated as a non-zero baseline

# Physical
g_n = _sc.g                             # Standard gravity [m/s^2]
