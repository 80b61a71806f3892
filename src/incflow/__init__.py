"""incflow: incompressible flow solver with a predictor-corrector projection method."""

__version__ = "0.1.0"
