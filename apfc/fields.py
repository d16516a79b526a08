"""
Owner of the amplitude fields, their spectral twins and scratch space.
"""

from __future__ import annotations

import logging
from typing import Dict

import numpy as np
from mpi4py import MPI

from .operators import NC, Array, Decomposition, GridSpec, ReciprocalSpace
from .transform import SlabFFTPlan


logger = logging.getLogger(__name__)

ROLES = ("eta", "buffer")


class FieldStore:
    """
    Arena of per-rank arrays, all shaped ``(3, local_nx, Ny)``.

    ``eta``/``eta_k`` hold the primary field, ``buffer``/``buffer_k`` the
    scratch pair reused by the energy, gradient and time step, and
    ``grad_theta`` the real orientation gradient.  Each role owns its own
    transform plan.
    """

    def __init__(self, grid: GridSpec, comm: MPI.Comm | None = None) -> None:
        self.grid = grid
        self.comm = comm if comm is not None else MPI.COMM_WORLD
        self.decomposition = Decomposition.for_rank(grid, self.comm.Get_size(), self.comm.Get_rank())
        self.reciprocal = ReciprocalSpace(self.decomposition)

        shape = (NC,) + self.decomposition.local_shape
        self.eta = np.zeros(shape, dtype=complex)
        self.eta_k = np.zeros(shape, dtype=complex)
        self.buffer = np.zeros(shape, dtype=complex)
        self.buffer_k = np.zeros(shape, dtype=complex)
        self.grad_theta = np.zeros(shape, dtype=float)

        self._plans: Dict[str, SlabFFTPlan] = {role: SlabFFTPlan(grid, self.comm, name=role) for role in ROLES}

    @property
    def shape(self):
        return self.eta.shape

    def _pair(self, role: str):
        if role == "eta":
            return self.eta, self.eta_k
        if role == "buffer":
            return self.buffer, self.buffer_k
        raise KeyError(f"Unknown field role '{role}', expected one of {ROLES}.")

    def forward(self, role: str = "eta") -> Array:
        real, spectral = self._pair(role)
        return self._plans[role].forward(real, spectral)

    def inverse(self, role: str = "eta") -> Array:
        """Unscaled inverse transform; follow with :meth:`normalize`."""
        real, spectral = self._pair(role)
        return self._plans[role].backward(spectral, real)

    def normalize(self, role: str = "eta") -> Array:
        real, _ = self._pair(role)
        real *= 1.0 / self.grid.size
        return real

    def to_real(self, role: str = "eta") -> Array:
        self.inverse(role)
        return self.normalize(role)

    def close(self) -> None:
        self._plans.clear()
        for name in ("eta", "eta_k", "buffer", "buffer_k", "grad_theta"):
            setattr(self, name, None)

    def __enter__(self) -> "FieldStore":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


__all__ = ["ROLES", "FieldStore"]
