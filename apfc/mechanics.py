"""
Mechanical equilibration between overdamped stretches.

The run loop only needs something with ``equilibrate() -> int``.  The
reference relaxer rotates the local lattice phases down the orientation
gradient: a displacement ``u`` changes the phases as ``theta_c -> theta_c -
q_c . u``, and descending in ``u`` moves each phase along ``-grad_theta_c``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import numpy as np
from mpi4py import MPI
from scipy.optimize import minimize_scalar

from .energy import FreeEnergy
from .fields import FieldStore


logger = logging.getLogger(__name__)


class Equilibrator(Protocol):
    def equilibrate(self) -> int:
        """Relax the field towards lower energy, return iterations used."""


@dataclass(frozen=True)
class MechanicalConfig:
    max_iters: int = 20
    tol: float = 1e-9
    max_step: float = 0.2  # largest phase change per iteration, radians
    line_search_iters: int = 12
    grad_tol: float = 1e-12  # below this the orientation gradient counts as zero


class RotationalEquilibrator:
    """
    Steepest descent on the phases with a bounded line search.

    Every energy evaluation is a collective (transform plus reduction) and the
    line search only sees the reduced energy, so all ranks take identical
    steps.  On return ``eta_k`` matches ``eta``.
    """

    def __init__(self, store: FieldStore, model: FreeEnergy, config: MechanicalConfig | None = None) -> None:
        self.store = store
        self.model = model
        self.config = config or MechanicalConfig()

    def _trial(self, eta0: np.ndarray, direction: np.ndarray, alpha: float) -> float:
        store = self.store
        np.multiply(eta0, np.exp(-1j * alpha * direction), out=store.eta)
        store.forward("eta")
        return self.model.energy()

    def equilibrate(self) -> int:
        store, cfg = self.store, self.config
        energy = self.model.energy()
        iterations = 0
        for iterations in range(1, cfg.max_iters + 1):
            grad = self.model.orientation_gradient()
            local_max = float(np.max(np.abs(grad))) if grad.size else 0.0
            scale = store.comm.allreduce(local_max, op=MPI.MAX)
            if scale <= cfg.grad_tol:
                break
            direction = grad / scale
            eta0 = store.eta.copy()
            result = minimize_scalar(
                lambda alpha: self._trial(eta0, direction, alpha),
                bounds=(0.0, cfg.max_step),
                method="bounded",
                options={"maxiter": cfg.line_search_iters, "xatol": 1e-4 * cfg.max_step},
            )
            new_energy = self._trial(eta0, direction, float(result.x))
            if not new_energy < energy:
                np.copyto(store.eta, eta0)
                store.forward("eta")
                break
            change = energy - new_energy
            energy = new_energy
            if change <= cfg.tol * abs(energy):
                break
        logger.debug("equilibration stopped after %d iterations at energy %.16e", iterations, energy)
        return iterations


__all__ = ["Equilibrator", "MechanicalConfig", "RotationalEquilibrator"]
