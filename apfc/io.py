"""
Checkpoint, visualization and run-log I/O.

Checkpoints are raw native doubles: for every amplitude ``c`` in order a
block of ``Nx * Ny`` complex values (re, im interleaved), row-major with the
second axis fastest.  Each rank reads or writes its own rows of every block
through MPI-IO, so the byte layout does not depend on the process count.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List

import numpy as np
from mpi4py import MPI

from .fields import FieldStore
from .operators import NC, Array, GridSpec
from .parallel import collective_guard, is_root


logger = logging.getLogger(__name__)

INITIAL_CHECKPOINT = "initial_conf.bin"


def checkpoint_name(timestep: int) -> str:
    return f"eta_{timestep}.bin"


def checkpoint_size(grid: GridSpec) -> int:
    return NC * grid.size * 16


def write_checkpoint(store: FieldStore, path: Path) -> Path:
    """
    Collective write of ``store.eta``.

    Rank 0 removes a stale file first; every rank then writes its rows of each
    component block at ``Decomposition.byte_offset``.
    """
    comm, decomposition = store.comm, store.decomposition
    path = Path(path)
    with collective_guard(comm, f"writing checkpoint {path}"):
        if is_root(comm) and path.exists():
            MPI.File.Delete(str(path))
        comm.Barrier()
        fh = MPI.File.Open(comm, str(path), MPI.MODE_CREATE | MPI.MODE_WRONLY)
        try:
            for c in range(NC):
                fh.Write_at_all(decomposition.byte_offset(c), store.eta[c])
        finally:
            fh.Close()
    logger.debug("rank %d wrote rows %s of %s", comm.Get_rank(), decomposition.row_slice, path)
    return path


def read_checkpoint(store: FieldStore, path: Path) -> Array:
    """
    Collective read into ``store.eta``; ``eta_k`` is left for the caller.
    """
    comm, decomposition = store.comm, store.decomposition
    path = Path(path)
    block = np.empty(decomposition.local_shape, dtype=complex)
    with collective_guard(comm, f"reading checkpoint {path}"):
        fh = MPI.File.Open(comm, str(path), MPI.MODE_RDONLY)
        try:
            expected = checkpoint_size(store.grid)
            actual = fh.Get_size()
            if actual != expected:
                raise ValueError(f"{path} holds {actual} bytes, grid {store.grid.shape} needs {expected}")
            for c in range(NC):
                fh.Read_at_all(decomposition.byte_offset(c), block)
                store.eta[c] = block
        finally:
            fh.Close()
    return store.eta


def gather_field(store: FieldStore, data: Array | None = None) -> Array | None:
    """Collect a ``(3, local_nx, Ny)`` field on rank 0 as ``(3, Nx, Ny)``."""
    comm, grid = store.comm, store.grid
    data = store.eta if data is None else data
    mpi_type = MPI.C_DOUBLE_COMPLEX if np.iscomplexobj(data) else MPI.DOUBLE
    counts = [count * grid.ny for _, count in store.decomposition.ranges()]
    displs = [start * grid.ny for start, _ in store.decomposition.ranges()]
    full = np.empty((NC,) + grid.shape, dtype=data.dtype) if is_root(comm) else None
    for c in range(NC):
        recv = [full[c], (counts, displs), mpi_type] if full is not None else None
        comm.Gatherv(np.ascontiguousarray(data[c]), recv, root=0)
    return full


class VTKExporter:
    """
    Legacy ASCII ``STRUCTURED_POINTS`` writer.

    Two scalar layers: the summed amplitude magnitudes and the reconstructed
    density ``2 Re sum_c eta_c exp(i q_c . r)``.  The phase factors are
    computed once on rank 0.
    """

    def __init__(self, store: FieldStore) -> None:
        self.store = store
        self.phase = None
        if is_root(store.comm):
            nx, ny = store.grid.shape
            dx, dy = store.grid.spacing
            x, y = np.meshgrid(np.arange(nx) * dx, np.arange(ny) * dy, indexing="ij")
            q = store.reciprocal.q_vec
            self.phase = np.exp(1j * (q[:, 0, None, None] * x + q[:, 1, None, None] * y))

    def layers(self, full: Array):
        amplitude = np.abs(full).sum(axis=0)
        density = 2.0 * np.real((full * self.phase).sum(axis=0))
        return {"amplitude": amplitude, "density": density}

    def write(self, path: Path) -> None:
        full = gather_field(self.store)
        if full is None:
            return
        nx, ny = self.store.grid.shape
        dx, dy = self.store.grid.spacing
        path = Path(path)
        with collective_guard(self.store.comm, f"writing {path}"), path.open("w", encoding="utf-8") as fh:
            fh.write("# vtk DataFile Version 3.0\n")
            fh.write("AmplitudePhaseFieldCrystal\n")
            fh.write("ASCII\n")
            fh.write("DATASET STRUCTURED_POINTS\n")
            fh.write(f"DIMENSIONS {nx} {ny} 1\n")
            fh.write("ORIGIN 0 0 0\n")
            fh.write(f"SPACING {dx:.6e} {dy:.6e} 1\n")
            fh.write(f"POINT_DATA {nx * ny}\n")
            for name, data in self.layers(full).items():
                fh.write(f"SCALARS {name} double 1\n")
                fh.write("LOOKUP_TABLE default\n")
                # x varies fastest in VTK point order
                fh.write("\n".join(f"{v:.10e}" for v in data.T.ravel()))
                fh.write("\n")
        logger.debug("wrote %s", path)


@dataclass(frozen=True)
class LogEntry:
    timestep: int
    simtime: float
    energy: float
    od_seconds: float
    eq_iterations: int
    eq_seconds: float
    total_seconds: float

    def format(self) -> str:
        return (
            f"{self.timestep:10d} {self.simtime:14.6f} {self.energy:24.16e} "
            f"{self.od_seconds:12.6f} {self.eq_iterations:8d} {self.eq_seconds:12.6f} {self.total_seconds:12.6f}"
        )

    @classmethod
    def parse(cls, line: str) -> "LogEntry":
        fields = line.split()
        if len(fields) != 7:
            raise ValueError(f"Malformed run-log line: {line!r}")
        return cls(
            int(fields[0]),
            float(fields[1]),
            float(fields[2]),
            float(fields[3]),
            int(fields[4]),
            float(fields[5]),
            float(fields[6]),
        )


class RunLog:
    """Line-per-cadence text log; only rank 0 touches the file."""

    def __init__(self, path: Path, comm: MPI.Comm) -> None:
        self.path = Path(path)
        self.comm = comm

    def read(self) -> List[LogEntry]:
        if not self.path.exists():
            return []
        with self.path.open("r", encoding="utf-8") as fh:
            return [LogEntry.parse(line) for line in fh if line.strip()]

    def append(self, entry: LogEntry) -> None:
        if not is_root(self.comm):
            return
        with collective_guard(self.comm, f"appending to {self.path}"), self.path.open("a", encoding="utf-8") as fh:
            fh.write(entry.format() + "\n")

    def truncate(self, simtime: float, tolerance: float = 0.0) -> List[LogEntry]:
        """Drop entries past ``simtime`` so a restart appends without duplicates."""
        kept = None
        if is_root(self.comm):
            with collective_guard(self.comm, f"truncating {self.path}"):
                kept = [entry for entry in self.read() if entry.simtime <= simtime + tolerance]
                with self.path.open("w", encoding="utf-8") as fh:
                    for entry in kept:
                        fh.write(entry.format() + "\n")
        return self.comm.bcast(kept, root=0)


__all__ = [
    "INITIAL_CHECKPOINT",
    "checkpoint_name",
    "checkpoint_size",
    "write_checkpoint",
    "read_checkpoint",
    "gather_field",
    "VTKExporter",
    "LogEntry",
    "RunLog",
]
