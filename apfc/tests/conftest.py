from __future__ import annotations

from pathlib import Path

import pytest
from mpi4py import MPI

from apfc.energy import APFCParameters, FreeEnergy
from apfc.fields import FieldStore
from apfc.operators import GridSpec


@pytest.fixture
def comm():
    return MPI.COMM_WORLD


@pytest.fixture
def shared_tmp_path(tmp_path, comm):
    """One directory for every rank when running under mpiexec."""
    return Path(comm.bcast(str(tmp_path), root=0))


@pytest.fixture
def make_store(comm):
    stores = []

    def factory(shape=(16, 16), spacing=(2.0, 2.0), dt=0.125):
        store = FieldStore(GridSpec(shape, spacing, dt), comm)
        stores.append(store)
        return store

    yield factory
    for store in stores:
        store.close()


@pytest.fixture
def model_for():
    def factory(store, params=None):
        return FreeEnergy(params or APFCParameters(), store)

    return factory
