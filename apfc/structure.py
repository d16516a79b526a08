"""
Builders for initial amplitude configurations.

All builders write the real-space field ``store.eta`` of the local slab only.
The spectral twin is left stale; call ``store.forward("eta")`` afterwards.
"""

from __future__ import annotations

from typing import Iterable, Tuple

import numpy as np

from .fields import FieldStore
from .operators import Array
from .seeds import NucleationParameters, Seed, SeedGenerator


EQUILIBRIUM_AMPLITUDE = 0.10867304595992146


def rotation_phase(q_vec: Array, angle: float, x: Array, y: Array) -> Array:
    """Phase ``(R(angle) q_c - q_c) . r`` of a lattice rotated by ``angle``."""
    cos, sin = np.cos(angle), np.sin(angle)
    phase = np.empty((len(q_vec),) + np.broadcast(x, y).shape)
    for c, (qx, qy) in enumerate(q_vec):
        phase[c] = (qx * cos + qy * sin - qx) * x + (-qx * sin + qy * cos - qy) * y
    return phase


def nearest_image(d: Array, period: float) -> Array:
    """Shortest of ``d``, ``d + L`` and ``d - L`` on a periodic axis."""
    candidates = np.stack([d, d + period, d - period])
    pick = np.argmin(np.abs(candidates), axis=0)
    return np.take_along_axis(candidates, pick[None], axis=0)[0]


class CrystalBuilder:
    def __init__(self, store: FieldStore) -> None:
        self.store = store
        self.grid = store.grid
        self.q_vec = store.reciprocal.q_vec
        decomposition = store.decomposition
        rows = np.arange(decomposition.local_nx_start, decomposition.local_nx_start + decomposition.local_nx)
        cols = np.arange(self.grid.ny)
        self.i, self.j = np.meshgrid(rows, cols, indexing="ij")

    def coordinates(self) -> Tuple[Array, Array]:
        dx, dy = self.grid.spacing
        return self.i * dx, self.j * dy

    def rotated_circle(self, angle: float = 0.0872665, amplitude: float = EQUILIBRIUM_AMPLITUDE) -> Array:
        """Rotated grain in a disk of radius ``Nx dx / 4`` around the center."""
        nx, ny = self.grid.shape
        dx, dy = self.grid.spacing
        x = (self.i + 1 - nx / 2.0) * dx
        y = (self.j + 1 - ny / 2.0) * dy
        inside = x**2 + y**2 <= (0.25 * nx * dx) ** 2
        theta = rotation_phase(self.q_vec, angle, x, y)
        eta = self.store.eta
        eta[...] = amplitude
        eta[:, inside] = amplitude * np.exp(1j * theta[:, inside])
        return eta

    def single_seed(self, amplitude: float = EQUILIBRIUM_AMPLITUDE, radius: float = 0.1) -> Array:
        """Liquid with one solid seed decaying as ``A / (rd^4 + 1)``."""
        lx, ly = self.grid.length
        x, y = self.coordinates()
        rd = np.hypot(x - lx / 2.0, y - ly / 2.0) / (radius * lx)
        self.store.eta[...] = amplitude / (rd**4 + 1.0)
        return self.store.eta

    def nucleate(self, seeds: Iterable[Seed], amplitude: float = EQUILIBRIUM_AMPLITUDE) -> Array:
        """
        Superpose rotated seeds with sharp ``A / (rd^16 + 1)`` envelopes.

        Distances follow the nearest periodic image on each axis so seeds
        close to an edge continue on the opposite side.
        """
        lx, ly = self.grid.length
        x, y = self.coordinates()
        eta = self.store.eta
        eta[...] = 0.0
        for seed in seeds:
            ddx = nearest_image(x - seed.center[0] * lx, lx)
            ddy = nearest_image(y - seed.center[1] * ly, ly)
            rd = np.hypot(ddx, ddy) / (seed.radius * lx)
            envelope = amplitude / (rd**16 + 1.0)
            theta = rotation_phase(self.q_vec, seed.angle, ddx, ddy)
            eta += envelope * np.exp(1j * theta)
        return eta

    def build(self, mode: str, nucleation: NucleationParameters | None = None) -> Array:
        params = nucleation or NucleationParameters()
        if mode == "circle":
            return self.rotated_circle(amplitude=params.amplitude)
        if mode == "seed":
            return self.single_seed(params.amplitude, params.seed_radius)
        if mode == "nucleation":
            seeds = SeedGenerator(params).draw_shared(self.store.comm)
            return self.nucleate(seeds, params.amplitude)
        raise ValueError(f"Unknown initialization mode '{mode}'.")


__all__ = ["EQUILIBRIUM_AMPLITUDE", "rotation_phase", "nearest_image", "CrystalBuilder"]
