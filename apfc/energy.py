"""
Amplitude Phase-Field Crystal free-energy functional.

The three complex amplitudes ``eta_c`` modulate the density waves along the
reciprocal lattice vectors ``q_c`` of a triangular crystal.  The functional
is evaluated partly in real space (local polynomial terms) and partly in
reciprocal space, where the operator ``G_c = -|k|^2 - 2 q_c.k`` is diagonal.
The class exposes the contract used by the integrator and the equilibration
step: total energy, the nonlinear coupling and the orientation gradient.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from mpi4py import MPI

from .fields import FieldStore
from .operators import Array


@dataclass(frozen=True)
class APFCParameters:
    """Coefficients of the amplitude free energy."""

    bx: float = 1.0  # elastic constant of the gradient term
    bl: float = 0.95  # liquid-state curvature, bl - bx sets the undercooling
    tt: float = 0.585  # cubic three-mode coupling
    vv: float = 1.0  # quartic coefficient

    def __post_init__(self) -> None:
        if self.bx < self.bl:
            raise ValueError(f"Semi-implicit scheme needs bx >= bl, got bx={self.bx}, bl={self.bl}.")


def nonlinear_part(eta: Array, params: APFCParameters) -> Array:
    """
    Per-cell coupling vector ``N_c`` for amplitudes stacked on axis 0.
    """
    mag_sq = np.abs(eta) ** 2
    aa = 2 * mag_sq.sum(axis=0)
    conj = np.conj(eta)
    out = np.empty_like(eta)
    for c in range(3):
        out[c] = 3 * params.vv * (aa - mag_sq[c]) * eta[c] - 2 * params.tt * conj[(c + 1) % 3] * conj[(c + 2) % 3]
    return out


class FreeEnergy:
    def __init__(self, params: APFCParameters, store: FieldStore) -> None:
        self.params = params
        self.store = store
        self.g_values = store.reciprocal.g_values
        self.g_squared = store.reciprocal.g_squared
        q = store.reciprocal.q_vec
        self.projection = q @ q.T

    def _pair(self, eta: Array | None, eta_k: Array | None):
        if (eta is None) != (eta_k is None):
            raise ValueError("Pass eta and eta_k together or neither.")
        if eta is None:
            return self.store.eta, self.store.eta_k
        return eta, eta_k

    def _apply_operator(self, operator: Array, eta_k: Array) -> Array:
        # one inverse pass of the scratch pair, normalized
        store = self.store
        np.multiply(operator, eta_k, out=store.buffer_k)
        return store.to_real("buffer")

    def energy_density(self, eta: Array, g_eta: Array) -> Array:
        p = self.params
        mag_sq = np.abs(eta) ** 2
        aa = 2 * mag_sq.sum(axis=0)
        return (
            aa * (p.bl - p.bx) / 2
            + 0.75 * p.vv * aa**2
            - 4 * p.tt * np.real(eta[0] * eta[1] * eta[2])
            + p.bx * (np.abs(g_eta) ** 2).sum(axis=0)
            - 1.5 * p.vv * (mag_sq**2).sum(axis=0)
        )

    def energy(self, eta: Array | None = None, eta_k: Array | None = None) -> float:
        """
        Total energy per cell, reduced over all ranks.

        ``eta_k`` must already be the transform of ``eta``.
        """
        store = self.store
        eta, eta_k = self._pair(eta, eta_k)
        g_eta = self._apply_operator(self.g_values, eta_k)
        local = float(np.sum(self.energy_density(eta, g_eta))) / store.grid.size
        return store.comm.allreduce(local, op=MPI.SUM)

    def variational_derivative(self, eta: Array | None = None, eta_k: Array | None = None) -> Array:
        """``dF/d eta_c*`` per cell; uses the scratch pair for ``G_c^2 eta_c``."""
        eta, eta_k = self._pair(eta, eta_k)
        p = self.params
        g2_eta = self._apply_operator(self.g_squared, eta_k)
        return (p.bl - p.bx) * eta + p.bx * g2_eta + nonlinear_part(eta, p)

    def orientation_gradient(self, eta: Array | None = None, eta_k: Array | None = None) -> Array:
        """
        Sensitivity of the energy to a local lattice rotation, projected on
        the reciprocal vectors.  Written into ``store.grad_theta``.
        """
        store = self.store
        eta, eta_k = self._pair(eta, eta_k)
        varf = self.variational_derivative(eta, eta_k)
        im = np.imag(np.conj(eta) * varf)
        np.einsum("ck,kxy->cxy", self.projection, im, out=store.grad_theta)
        return store.grad_theta


__all__ = ["APFCParameters", "nonlinear_part", "FreeEnergy"]
