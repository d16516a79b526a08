"""
Random nucleation seeds for multi-grain initial states.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

import numpy as np
from mpi4py import MPI


@dataclass(frozen=True)
class Seed:
    center: Tuple[float, float]  # relative position in [0, 1) on each axis
    radius: float  # fraction of the domain length along x
    angle: float  # lattice rotation in radians


@dataclass(frozen=True)
class NucleationParameters:
    count: int = 10
    max_radius: float = 0.05
    max_angle: float = 0.5 * np.pi / 3.0
    amplitude: float = 0.10867304595992146
    seed: int = 0
    seed_radius: float = 0.1  # single-seed profile width, fraction of the domain

    def __post_init__(self) -> None:
        if self.count < 0:
            raise ValueError(f"Seed count must be non-negative, got {self.count}.")
        if self.max_radius <= 0 or self.seed_radius <= 0:
            raise ValueError("Seed radii must be positive.")


@dataclass
class SeedGenerator:
    params: NucleationParameters

    def draw(self, rng: np.random.Generator | None = None) -> List[Seed]:
        rng = rng or np.random.default_rng(self.params.seed)
        seeds = []
        for _ in range(self.params.count):
            x, y = rng.random(2)
            radius = self.params.max_radius * (1.0 - rng.random())  # (0, max_radius]
            angle = self.params.max_angle * rng.random()
            seeds.append(Seed((float(x), float(y)), float(radius), float(angle)))
        return seeds

    def draw_shared(self, comm: MPI.Comm) -> List[Seed]:
        """Draw on rank 0 and broadcast so every slab sees the same seeds."""
        seeds = self.draw() if comm.Get_rank() == 0 else None
        return comm.bcast(seeds, root=0)


__all__ = ["Seed", "NucleationParameters", "SeedGenerator"]
