"""Fluid operators: boundaries, convection, diffusion, projection and rheology."""

from incflow.fluid.boundary import BoundaryFiller
from incflow.fluid.convection import ConvectionOperator
from incflow.fluid.implicit_diffusion import DiffusionSolver
from incflow.fluid.projection import ProjectionSolver

__all__ = ["BoundaryFiller", "ConvectionOperator", "DiffusionSolver", "ProjectionSolver"]
