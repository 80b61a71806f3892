"""Generalised-Newtonian rheology models.

Each fluid model is a validated pydantic variant carrying its own
parameters and a uniform ``effective_viscosity(sr)`` capability, where
``sr`` is the strain-rate magnitude sqrt(2 S:S).  The variant is selected
by the ``fluid_model`` discriminator in the configuration:

    newtonian   eta = mu
    powerlaw    eta = mu * sr^(n-1)
    bingham     eta = mu + tau_0 * (1 - exp(-sr/papa_reg)) / sr
    hb          eta = mu * sr^(n-1) + tau_0 * (1 - exp(-sr/papa_reg)) / sr
    smd         eta = (mu * sr^(n-1) + tau_0 / sr) * (1 - exp(-eta_0 * sr / tau_0))

The yield-stress models use Papanastasiou regularisation so the viscosity
stays finite as sr -> 0.

References:
    Papanastasiou T.C., J. Rheol. 31, 385 (1987).
    de Souza Mendes P.R. & Dutra E.S.S., Appl. Rheol. 14, 296 (2004).
"""

from __future__ import annotations

from typing import Annotated, Literal, Union

import numpy as np
from pydantic import BaseModel, Field, model_validator

# Strain rates below this are clipped before raising to negative powers
_SR_FLOOR = 1.0e-12


def expterm(x: np.ndarray) -> np.ndarray:
    """Evaluate (1 - exp(-x)) / x, using a series expansion for small x.

    Args:
        x: Non-negative array.

    Returns:
        Array of the same shape, equal to 1 at x = 0.
    """
    x = np.asarray(x, dtype=np.float64)
    small = x < 1.0e-4
    safe = np.where(small, 1.0, x)
    series = 1.0 - x / 2.0 + x**2 / 6.0 - x**3 / 24.0
    return np.where(small, series, -np.expm1(-safe) / safe)


def _floored(sr: np.ndarray) -> np.ndarray:
    return np.maximum(np.asarray(sr, dtype=np.float64), _SR_FLOOR)


class Newtonian(BaseModel):
    """Constant-viscosity fluid."""

    fluid_model: Literal["newtonian"] = "newtonian"
    mu: float = Field(1.0, gt=0, description="Dynamic viscosity [Pa*s]")

    def effective_viscosity(self, sr: np.ndarray) -> np.ndarray:
        return np.full_like(np.asarray(sr, dtype=np.float64), self.mu)

    def describe(self) -> str:
        return f"Newtonian fluid with mu = {self.mu}"


class PowerLaw(BaseModel):
    """Power-law (Ostwald-de Waele) fluid."""

    fluid_model: Literal["powerlaw"] = "powerlaw"
    mu: float = Field(1.0, gt=0, description="Consistency index [Pa*s^n]")
    n: float = Field(..., gt=0, description="Flow behaviour index")

    @model_validator(mode="after")
    def check_index(self) -> PowerLaw:
        if self.n == 1.0:
            raise ValueError("No point in using power-law rheology with n = 1")
        return self

    def effective_viscosity(self, sr: np.ndarray) -> np.ndarray:
        return self.mu * _floored(sr) ** (self.n - 1.0)

    def describe(self) -> str:
        return f"Power-law fluid with mu = {self.mu}, n = {self.n}"


class Bingham(BaseModel):
    """Papanastasiou-regularised Bingham plastic."""

    fluid_model: Literal["bingham"] = "bingham"
    mu: float = Field(1.0, gt=0, description="Plastic viscosity [Pa*s]")
    tau_0: float = Field(..., gt=0, description="Yield stress [Pa]")
    papa_reg: float = Field(..., gt=0, description="Papanastasiou regularisation strain rate [1/s]")

    def effective_viscosity(self, sr: np.ndarray) -> np.ndarray:
        sr = np.asarray(sr, dtype=np.float64)
        return self.mu + self.tau_0 * expterm(sr / self.papa_reg) / self.papa_reg

    def describe(self) -> str:
        return (
            f"Bingham fluid with mu = {self.mu}, tau_0 = {self.tau_0}, "
            f"papa_reg = {self.papa_reg}"
        )


class HerschelBulkley(BaseModel):
    """Papanastasiou-regularised Herschel-Bulkley fluid."""

    fluid_model: Literal["hb"] = "hb"
    mu: float = Field(1.0, gt=0, description="Consistency index [Pa*s^n]")
    n: float = Field(..., gt=0, description="Flow behaviour index")
    tau_0: float = Field(..., gt=0, description="Yield stress [Pa]")
    papa_reg: float = Field(..., gt=0, description="Papanastasiou regularisation strain rate [1/s]")

    @model_validator(mode="after")
    def check_index(self) -> HerschelBulkley:
        if self.n == 1.0:
            raise ValueError("No point in using Herschel-Bulkley rheology with n = 1")
        return self

    def effective_viscosity(self, sr: np.ndarray) -> np.ndarray:
        sr = np.asarray(sr, dtype=np.float64)
        return (
            self.mu * _floored(sr) ** (self.n - 1.0)
            + self.tau_0 * expterm(sr / self.papa_reg) / self.papa_reg
        )

    def describe(self) -> str:
        return (
            f"Herschel-Bulkley fluid with mu = {self.mu}, n = {self.n}, "
            f"tau_0 = {self.tau_0}, papa_reg = {self.papa_reg}"
        )


class SouzaMendesDutra(BaseModel):
    """de Souza Mendes-Dutra viscoplastic fluid."""

    fluid_model: Literal["smd"] = "smd"
    mu: float = Field(1.0, gt=0, description="Consistency index [Pa*s^n]")
    n: float = Field(..., gt=0, description="Flow behaviour index")
    tau_0: float = Field(..., gt=0, description="Yield stress [Pa]")
    eta_0: float = Field(..., gt=0, description="Zero-shear-rate viscosity [Pa*s]")

    def effective_viscosity(self, sr: np.ndarray) -> np.ndarray:
        sr = np.asarray(sr, dtype=np.float64)
        # (1 - exp(-eta_0 sr / tau_0)) * tau_0 / sr == eta_0 * expterm(eta_0 sr / tau_0)
        yield_part = self.eta_0 * expterm(self.eta_0 * sr / self.tau_0)
        shear_part = (
            self.mu * _floored(sr) ** (self.n - 1.0) * -np.expm1(-self.eta_0 * sr / self.tau_0)
        )
        return yield_part + shear_part

    def describe(self) -> str:
        return (
            f"de Souza Mendes-Dutra fluid with mu = {self.mu}, n = {self.n}, "
            f"tau_0 = {self.tau_0}, eta_0 = {self.eta_0}"
        )


Rheology = Annotated[
    Union[Newtonian, PowerLaw, Bingham, HerschelBulkley, SouzaMendesDutra],
    Field(discriminator="fluid_model"),
]
