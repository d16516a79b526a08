"""
Periodic grid, row-slab decomposition and reciprocal-space operator tables.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Tuple

import numpy as np


Array = np.ndarray

# Reciprocal lattice vectors of the triangular lattice, one per amplitude.
Q_VEC = np.array(
    [
        [-0.5 * np.sqrt(3.0), -0.5],
        [0.0, 1.0],
        [0.5 * np.sqrt(3.0), -0.5],
    ]
)
Q_VEC.setflags(write=False)

NC = len(Q_VEC)


@dataclass(frozen=True)
class GridSpec:
    shape: Tuple[int, int] = (32, 32)
    spacing: Tuple[float, float] = (2.0, 2.0)
    dt: float = 0.125

    def __post_init__(self) -> None:
        if len(self.shape) != 2 or len(self.spacing) != 2:
            raise ValueError("GridSpec describes a 2D grid: shape and spacing need two entries.")
        if any(int(n) != n or n <= 0 for n in self.shape):
            raise ValueError(f"Grid extents must be positive integers, got {self.shape}.")
        if any(d <= 0 for d in self.spacing):
            raise ValueError(f"Grid spacing must be positive, got {self.spacing}.")
        if self.dt <= 0:
            raise ValueError(f"Time step must be positive, got {self.dt}.")
        object.__setattr__(self, "shape", (int(self.shape[0]), int(self.shape[1])))
        object.__setattr__(self, "spacing", (float(self.spacing[0]), float(self.spacing[1])))

    @property
    def nx(self) -> int:
        return self.shape[0]

    @property
    def ny(self) -> int:
        return self.shape[1]

    @property
    def size(self) -> int:
        return self.shape[0] * self.shape[1]

    @property
    def length(self) -> Tuple[float, float]:
        return (self.shape[0] * self.spacing[0], self.shape[1] * self.spacing[1])


def partition(n: int, size: int) -> List[Tuple[int, int]]:
    """
    Split ``n`` rows over ``size`` ranks as ``(start, count)`` pairs.

    Blocks of ``ceil(n / size)`` rows are handed out in rank order, the same
    way FFTW-MPI lays out its slabs, so trailing ranks may end up empty.
    """
    if n <= 0:
        raise ValueError(f"Cannot partition {n} rows.")
    if size <= 0:
        raise ValueError(f"Process count must be positive, got {size}.")
    block = -(-n // size)
    ranges = []
    for rank in range(size):
        start = min(rank * block, n)
        ranges.append((start, min(block, n - start)))
    return ranges


@dataclass(frozen=True)
class Decomposition:
    """Row slab owned by one rank: full extent along the second axis."""

    grid: GridSpec
    size: int
    rank: int
    local_nx_start: int
    local_nx: int

    @classmethod
    def for_rank(cls, grid: GridSpec, size: int, rank: int) -> "Decomposition":
        if not 0 <= rank < size:
            raise ValueError(f"Rank {rank} outside process group of size {size}.")
        start, count = partition(grid.nx, size)[rank]
        return cls(grid, size, rank, start, count)

    @property
    def local_shape(self) -> Tuple[int, int]:
        return (self.local_nx, self.grid.ny)

    @property
    def row_slice(self) -> slice:
        return slice(self.local_nx_start, self.local_nx_start + self.local_nx)

    def ranges(self) -> List[Tuple[int, int]]:
        return partition(self.grid.nx, self.size)

    def byte_offset(self, component: int, itemsize: int = 8) -> int:
        # two scalars (re, im) per complex element
        nx, ny = self.grid.shape
        return self.local_nx_start * ny * itemsize * 2 + component * nx * ny * itemsize * 2


def wave_numbers(n: int, d: float) -> Array:
    """Signed angular wavenumbers of the ``n`` DFT bins for spacing ``d``."""
    k = 2 * np.pi * np.fft.fftfreq(n, d=d)
    k.setflags(write=False)
    return k


class ReciprocalSpace:
    """
    Wavenumber tables and the linear operator ``G_c = -|k|^2 - 2 q_c.k``
    restricted to the rows of one decomposition slab.
    """

    def __init__(self, decomposition: Decomposition, q_vec: Array = Q_VEC) -> None:
        grid = decomposition.grid
        self.decomposition = decomposition
        self.q_vec = q_vec
        self.k_x = wave_numbers(grid.nx, grid.spacing[0])
        self.k_y = wave_numbers(grid.ny, grid.spacing[1])
        self.g_values = self._compute_g_values()
        self.g_squared = self.g_values**2
        self.g_values.setflags(write=False)
        self.g_squared.setflags(write=False)

    def _compute_g_values(self) -> Array:
        kx = self.k_x[self.decomposition.row_slice][:, None]
        ky = self.k_y[None, :]
        k_sq = kx**2 + ky**2
        g = np.empty((len(self.q_vec),) + self.decomposition.local_shape)
        for c, q in enumerate(self.q_vec):
            g[c] = -k_sq - 2 * (q[0] * kx + q[1] * ky)
        return g


__all__ = [
    "Array",
    "Q_VEC",
    "NC",
    "GridSpec",
    "partition",
    "Decomposition",
    "wave_numbers",
    "ReciprocalSpace",
]
