"""
Semi-implicit overdamped evolver for the amplitude equations.
"""

from __future__ import annotations

import numpy as np

from .energy import APFCParameters, FreeEnergy, nonlinear_part
from .fields import FieldStore


class OverdampedEvolver:
    def __init__(self, store: FieldStore, model: FreeEnergy) -> None:
        self.store = store
        self.params: APFCParameters = model.params
        self.dt = store.grid.dt
        p = self.params
        # linear part treated implicitly: 1 + dt (bl - bx + bx G^2)
        self.denominator = 1.0 + self.dt * (p.bl - p.bx + p.bx * model.g_squared)

    def step(self) -> None:
        """
        Advance ``eta`` and ``eta_k`` by one time step.

        The nonlinear term is taken explicitly at the pre-step field, the
        linear term implicitly in reciprocal space.
        """
        store = self.store
        np.copyto(store.buffer, store.eta)
        store.buffer -= self.dt * nonlinear_part(store.eta, self.params)
        store.forward("buffer")
        np.divide(store.buffer_k, self.denominator, out=store.eta_k)
        store.to_real("eta")

    def advance(self, steps: int) -> None:
        for _ in range(steps):
            self.step()


__all__ = ["OverdampedEvolver"]
