"""
Process-group helpers shared by the transform, I/O and orchestration layers.

Every rank runs the same sequence of collectives.  Failures inside a
collective cannot be recovered locally, so they tear down the whole group.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator

from mpi4py import MPI


logger = logging.getLogger(__name__)


class CheckpointError(RuntimeError):
    """Raised when a collective file operation fails on a single-rank run."""


def world() -> MPI.Comm:
    return MPI.COMM_WORLD


def is_root(comm: MPI.Comm) -> bool:
    return comm.Get_rank() == 0


@contextmanager
def collective_guard(comm: MPI.Comm, what: str) -> Iterator[None]:
    """
    Run a collective step; on failure abort every rank of ``comm``.

    With a single rank there is nobody to desynchronize, so the error is
    re-raised as :class:`CheckpointError` instead.
    """
    try:
        yield
    except (MPI.Exception, OSError, ValueError) as exc:
        logger.error("rank %d: %s failed: %s", comm.Get_rank(), what, exc)
        if comm.Get_size() > 1:
            comm.Abort(1)
        raise CheckpointError(f"{what} failed: {exc}") from exc


def ensure_directory(comm: MPI.Comm, path: Path) -> Path:
    """Rank 0 creates ``path``; everybody waits until it exists."""
    path = Path(path)
    if is_root(comm):
        with collective_guard(comm, f"creating {path}"):
            path.mkdir(parents=True, exist_ok=True)
    comm.Barrier()
    return path


__all__ = ["CheckpointError", "world", "is_root", "collective_guard", "ensure_directory"]
