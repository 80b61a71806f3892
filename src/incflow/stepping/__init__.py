"""Time stepping: step-size control, predictor-corrector integration, steady state."""

from incflow.stepping.predictor_corrector import PredictorCorrectorIntegrator
from incflow.stepping.steady_state import SteadyStateMonitor
from incflow.stepping.timestep import TimeStepController

__all__ = ["PredictorCorrectorIntegrator", "SteadyStateMonitor", "TimeStepController"]
