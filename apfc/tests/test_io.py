from __future__ import annotations

import numpy as np
import pytest

from apfc.io import (
    LogEntry,
    RunLog,
    VTKExporter,
    checkpoint_name,
    checkpoint_size,
    gather_field,
    read_checkpoint,
    write_checkpoint,
)
from apfc.parallel import CheckpointError


def random_field(shape, seed=1):
    rng = np.random.default_rng(seed)
    return rng.standard_normal((3,) + shape) + 1j * rng.standard_normal((3,) + shape)


def test_checkpoint_round_trip_is_bit_exact(make_store, shared_tmp_path):
    store = make_store(shape=(9, 7))
    original = random_field((9, 7))[:, store.decomposition.row_slice]
    store.eta[...] = original
    path = write_checkpoint(store, shared_tmp_path / checkpoint_name(40))
    store.eta[...] = 0.0
    read_checkpoint(store, path)
    assert np.array_equal(store.eta, original)
    assert path.stat().st_size == checkpoint_size(store.grid) == 3 * 9 * 7 * 16


def test_checkpoint_byte_layout(make_store, shared_tmp_path, comm):
    store = make_store(shape=(6, 5))
    full = random_field((6, 5), seed=2)
    store.eta[...] = full[:, store.decomposition.row_slice]
    path = write_checkpoint(store, shared_tmp_path / "layout.bin")
    if comm.Get_rank() == 0:
        raw = np.fromfile(path, dtype=np.float64)
        assert raw.size == 3 * 6 * 5 * 2
        # block c, row i, column j, then (re, im)
        blocks = raw.reshape(3, 6, 5, 2)
        np.testing.assert_array_equal(blocks[..., 0], full.real)
        np.testing.assert_array_equal(blocks[..., 1], full.imag)


def test_checkpoint_overwrites_longer_file(make_store, shared_tmp_path, comm):
    path = shared_tmp_path / "eta_0.bin"
    if comm.Get_rank() == 0:
        path.write_bytes(b"\0" * 10000)
    comm.Barrier()
    store = make_store(shape=(4, 4))
    store.eta[...] = 1.0 + 2.0j
    write_checkpoint(store, path)
    assert path.stat().st_size == 3 * 4 * 4 * 16


def test_read_rejects_mismatched_size(make_store, shared_tmp_path, comm):
    if comm.Get_size() > 1:
        pytest.skip("failing collectives abort multi-rank runs")
    small = make_store(shape=(4, 4))
    path = write_checkpoint(small, shared_tmp_path / "small.bin")
    big = make_store(shape=(8, 8))
    with pytest.raises(CheckpointError):
        read_checkpoint(big, path)


def test_read_missing_file_fails(make_store, shared_tmp_path, comm):
    if comm.Get_size() > 1:
        pytest.skip("failing collectives abort multi-rank runs")
    store = make_store(shape=(4, 4))
    with pytest.raises(CheckpointError):
        read_checkpoint(store, shared_tmp_path / "missing.bin")


def test_gather_field_on_root(make_store, comm):
    store = make_store(shape=(7, 3))
    full = random_field((7, 3), seed=3)
    store.eta[...] = full[:, store.decomposition.row_slice]
    gathered = gather_field(store)
    if comm.Get_rank() == 0:
        np.testing.assert_array_equal(gathered, full)
    else:
        assert gathered is None
    store.grad_theta[...] = full.real[:, store.decomposition.row_slice]
    gathered = gather_field(store, store.grad_theta)
    if comm.Get_rank() == 0:
        np.testing.assert_array_equal(gathered, full.real)


def test_vtk_export(make_store, shared_tmp_path, comm):
    store = make_store(shape=(4, 3), spacing=(2.0, 1.5))
    store.eta[...] = 0.1
    path = shared_tmp_path / "eta_0.vtk"
    VTKExporter(store).write(path)
    comm.Barrier()
    lines = path.read_text().splitlines()
    assert lines[0] == "# vtk DataFile Version 3.0"
    assert lines[2] == "ASCII"
    assert lines[3] == "DATASET STRUCTURED_POINTS"
    assert lines[4] == "DIMENSIONS 4 3 1"
    assert lines[7] == "POINT_DATA 12"
    assert lines[8] == "SCALARS amplitude double 1"
    assert lines[9] == "LOOKUP_TABLE default"
    amplitude = np.array([float(v) for v in lines[10:22]])
    np.testing.assert_allclose(amplitude, 0.3)
    assert lines[22] == "SCALARS density double 1"
    density = np.array([float(v) for v in lines[24:36]])
    assert len(density) == 12
    # origin: all phase factors equal one
    assert density[0] == pytest.approx(0.6)


def test_vtk_density_layer(make_store, comm):
    store = make_store(shape=(4, 4), spacing=(1.0, 1.0))
    exporter = VTKExporter(store)
    if comm.Get_rank() != 0:
        return
    full = np.zeros((3, 4, 4), dtype=complex)
    full[1] = 0.5
    layers = exporter.layers(full)
    y = np.arange(4.0)[None, :]
    # q_1 = (0, 1)
    np.testing.assert_allclose(layers["density"], np.cos(y) * np.ones((4, 1)), atol=1e-15)
    np.testing.assert_allclose(layers["amplitude"], 0.5)


def entry(step, dt=0.5, energy=-1e-3):
    return LogEntry(step, step * dt, energy, 0.25, 3, 0.125, 0.5)


def test_log_entry_round_trip():
    e = LogEntry(1200, 150.0, -4.123456789012345e-05, 1.5, 17, 0.75, 2.25)
    line = e.format()
    assert LogEntry.parse(line) == e
    assert len(line.split()) == 7
    with pytest.raises(ValueError):
        LogEntry.parse("1 2 3")


def test_run_log_truncates_past_restart(shared_tmp_path, comm):
    log = RunLog(shared_tmp_path / "run.log", comm)
    for step in (100, 200, 300, 400):
        log.append(entry(step))
    comm.Barrier()
    kept = log.truncate(100.0, tolerance=0.25)
    assert [e.timestep for e in kept] == [100, 200]
    log.append(entry(300, energy=-2e-3))
    comm.Barrier()
    entries = log.read()
    assert [e.timestep for e in entries] == [100, 200, 300]
    assert entries[-1].energy == -2e-3


def test_vtk_write_into_directory_fails(make_store, shared_tmp_path, comm):
    if comm.Get_size() > 1:
        pytest.skip("failing collectives abort multi-rank runs")
    store = make_store(shape=(4, 4))
    target = shared_tmp_path / "taken.vtk"
    target.mkdir()
    with pytest.raises(CheckpointError):
        VTKExporter(store).write(target)


def test_run_log_append_failure_fails(shared_tmp_path, comm):
    if comm.Get_size() > 1:
        pytest.skip("failing collectives abort multi-rank runs")
    log = RunLog(shared_tmp_path / "missing" / "run.log", comm)
    with pytest.raises(CheckpointError):
        log.append(LogEntry(5, 0.625, -1.0, 0.1, 2, 0.1, 0.2))
