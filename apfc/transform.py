"""
Slab-distributed 2D complex FFT.

Each rank holds ``local_nx`` full rows of the ``Nx x Ny`` grid.  A 2D
transform is a 1D FFT along the locally complete second axis, an all-to-all
transpose into column slabs, a 1D FFT along the first axis and the transpose
back, so spectral data keeps the row distribution of the real-space data.

Neither direction scales its output.  ``backward(forward(x))`` equals
``Nx * Ny * x``; dividing by the cell count is the caller's job.
"""

from __future__ import annotations

import logging
from typing import List, Tuple

import numpy as np
from mpi4py import MPI

from .operators import Array, Decomposition, GridSpec, partition


logger = logging.getLogger(__name__)

_COMPLEX = MPI.C_DOUBLE_COMPLEX


def pack_columns(slab: Array, col_ranges: List[Tuple[int, int]], out: Array | None = None) -> Array:
    """Flatten ``slab`` as consecutive column blocks, one per destination rank."""
    if out is None:
        out = np.empty(slab.size, dtype=slab.dtype)
    pos = 0
    for start, count in col_ranges:
        n = slab.shape[0] * count
        out[pos:pos + n].reshape(slab.shape[0], count)[...] = slab[:, start:start + count]
        pos += n
    return out


def unpack_columns(flat: Array, col_ranges: List[Tuple[int, int]], out: Array) -> Array:
    """Inverse of :func:`pack_columns` into the ``(rows, Ny)`` array ``out``."""
    pos = 0
    for start, count in col_ranges:
        n = out.shape[0] * count
        out[:, start:start + count] = flat[pos:pos + n].reshape(out.shape[0], count)
        pos += n
    return out


def _displacements(counts: List[int]) -> List[int]:
    return [int(x) for x in np.concatenate(([0], np.cumsum(counts)[:-1]))]


class SlabFFTPlan:
    """
    Forward/backward transform pair bound to one grid and one process group.

    A plan owns its staging buffers and refuses arrays of any other shape.
    """

    def __init__(self, grid: GridSpec, comm: MPI.Comm, name: str = "field") -> None:
        self.grid = grid
        self.comm = comm
        self.name = name
        size, rank = comm.Get_size(), comm.Get_rank()
        self.decomposition = Decomposition.for_rank(grid, size, rank)
        self.row_ranges = partition(grid.nx, size)
        self.col_ranges = partition(grid.ny, size)

        local_nx = self.decomposition.local_nx
        local_ny = self.col_ranges[rank][1]
        self.local_shape = (local_nx, grid.ny)
        self.column_shape = (grid.nx, local_ny)

        # rows -> columns
        self._to_cols_send = [local_nx * count for _, count in self.col_ranges]
        self._to_cols_recv = [count * local_ny for _, count in self.row_ranges]
        # columns -> rows
        self._to_rows_send = list(self._to_cols_recv)
        self._to_rows_recv = list(self._to_cols_send)

        self._row_flat = np.empty(local_nx * grid.ny, dtype=complex)
        self._col_flat = np.empty(grid.nx * local_ny, dtype=complex)
        self._work = np.empty(self.local_shape, dtype=complex)

        comm.Barrier()
        logger.debug(
            "rank %d: plan '%s' for %s, rows [%d, %d), cols %d",
            rank,
            name,
            grid.shape,
            self.decomposition.local_nx_start,
            self.decomposition.local_nx_start + local_nx,
            local_ny,
        )

    def _components(self, src: Array, dst: Array) -> Tuple[Array, Array]:
        if src.shape != dst.shape:
            raise ValueError(f"Plan '{self.name}': source {src.shape} and target {dst.shape} differ.")
        if src.shape == self.local_shape:
            return src[None], dst[None]
        if src.ndim == 3 and src.shape[1:] == self.local_shape:
            return src, dst
        raise ValueError(f"Plan '{self.name}' is fixed to slabs of shape {self.local_shape}, got {src.shape}.")

    def _rows_to_columns(self, slab: Array) -> Array:
        pack_columns(slab, self.col_ranges, out=self._row_flat)
        self.comm.Alltoallv(
            [self._row_flat, (self._to_cols_send, _displacements(self._to_cols_send)), _COMPLEX],
            [self._col_flat, (self._to_cols_recv, _displacements(self._to_cols_recv)), _COMPLEX],
        )
        return self._col_flat.reshape(self.column_shape)

    def _columns_to_rows(self, columns: Array, out: Array) -> Array:
        self._col_flat[...] = columns.ravel()
        self.comm.Alltoallv(
            [self._col_flat, (self._to_rows_send, _displacements(self._to_rows_send)), _COMPLEX],
            [self._row_flat, (self._to_rows_recv, _displacements(self._to_rows_recv)), _COMPLEX],
        )
        return unpack_columns(self._row_flat, self.col_ranges, out)

    def _execute(self, src: Array, dst: Array, inverse: bool) -> Array:
        fft = np.fft.ifft if inverse else np.fft.fft
        # "forward" puts the 1/n factor on the forward call, leaving ifft unscaled
        norm = "forward" if inverse else "backward"
        sources, targets = self._components(src, dst)
        for c in range(sources.shape[0]):
            work = self._work
            if work.size:
                work[...] = fft(sources[c], axis=1, norm=norm)
            columns = self._rows_to_columns(work)
            if columns.size:
                columns = fft(columns, axis=0, norm=norm)
            self._columns_to_rows(columns, targets[c])
        return dst

    def forward(self, src: Array, dst: Array) -> Array:
        return self._execute(src, dst, inverse=False)

    def backward(self, src: Array, dst: Array) -> Array:
        return self._execute(src, dst, inverse=True)


__all__ = ["SlabFFTPlan", "pack_columns", "unpack_columns"]
