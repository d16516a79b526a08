from __future__ import annotations

import numpy as np
import pytest

from apfc.seeds import NucleationParameters, Seed, SeedGenerator
from apfc.structure import EQUILIBRIUM_AMPLITUDE, CrystalBuilder, nearest_image, rotation_phase


def global_rows(store):
    return np.arange(store.grid.nx)[store.decomposition.row_slice]


def test_rotated_circle_layout(make_store):
    store = make_store(shape=(32, 32), spacing=(2.0, 2.0))
    eta = CrystalBuilder(store).rotated_circle(angle=0.0872665)
    np.testing.assert_allclose(np.abs(eta), EQUILIBRIUM_AMPLITUDE, rtol=1e-14)

    rows = global_rows(store)
    x = (rows[:, None] + 1 - 16.0) * 2.0
    y = (np.arange(32)[None, :] + 1 - 16.0) * 2.0
    outside = x**2 + y**2 > 16.0**2
    assert np.all(eta[:, outside] == EQUILIBRIUM_AMPLITUDE)
    inside = ~outside
    if inside.any():
        theta = rotation_phase(store.reciprocal.q_vec, 0.0872665, x + 0 * y, y + 0 * x)
        np.testing.assert_allclose(eta[:, inside], EQUILIBRIUM_AMPLITUDE * np.exp(1j * theta[:, inside]), rtol=1e-12)


def test_rotation_phase_vanishes_without_rotation():
    x, y = np.meshgrid(np.arange(4.0), np.arange(3.0), indexing="ij")
    q = np.array([[1.0, 0.0], [0.0, 1.0], [0.6, 0.8]])
    assert np.all(rotation_phase(q, 0.0, x, y) == 0.0)


def test_single_seed_profile(make_store):
    store = make_store(shape=(20, 20), spacing=(1.0, 1.0))
    eta = CrystalBuilder(store).single_seed(amplitude=0.2, radius=0.1)
    assert np.all(eta[0] == eta[1]) and np.all(eta[1] == eta[2])
    assert np.all(eta.imag == 0.0)
    rows = global_rows(store)
    if 10 in rows:
        assert eta[0, list(rows).index(10), 10] == pytest.approx(0.2)
    # rd = 1 at a distance of 0.1 * Lx = 2 cells
    if 12 in rows:
        assert eta[0, list(rows).index(12), 10] == pytest.approx(0.1)


def test_nearest_image_picks_shortest_displacement():
    d = np.array([-9.0, -6.0, -1.0, 0.0, 4.0, 6.0, 9.0])
    np.testing.assert_allclose(nearest_image(d, 10.0), [1.0, 4.0, -1.0, 0.0, 4.0, -4.0, -1.0])


def test_seed_near_edge_wraps_to_opposite_side(make_store):
    store = make_store(shape=(64, 64), spacing=(1.0, 1.0))
    seed = Seed(center=(0.02, 0.5), radius=0.08, angle=0.0)
    eta = CrystalBuilder(store).nucleate([seed], amplitude=1.0)

    # center at x = 1.28; the last row x = 63 is 2.28 away through the boundary
    rows = global_rows(store)
    if 63 in rows:
        value = eta[0, list(rows).index(63), 32]
        rd = 2.28 / (0.08 * 64)
        assert value.real == pytest.approx(1.0 / (rd**16 + 1.0), rel=1e-12)
        assert value.real > 0.99
    if 33 in rows:
        assert abs(eta[0, list(rows).index(33), 32]) < 1e-9


def test_seeds_superpose(make_store):
    store = make_store(shape=(16, 16), spacing=(1.0, 1.0))
    builder = CrystalBuilder(store)
    a = Seed((0.25, 0.25), 0.2, 0.1)
    b = Seed((0.3, 0.3), 0.2, -0.2)
    single_a = builder.nucleate([a]).copy()
    single_b = builder.nucleate([b]).copy()
    both = builder.nucleate([a, b])
    np.testing.assert_allclose(both, single_a + single_b, rtol=1e-14, atol=1e-16)


def test_seed_generator_respects_bounds():
    params = NucleationParameters(count=50, max_radius=0.07, max_angle=0.3, seed=4)
    seeds = SeedGenerator(params).draw()
    assert len(seeds) == 50
    for s in seeds:
        assert 0.0 <= s.center[0] < 1.0 and 0.0 <= s.center[1] < 1.0
        assert 0.0 < s.radius <= 0.07
        assert 0.0 <= s.angle < 0.3
    assert SeedGenerator(params).draw() == seeds


class ZeroGenerator:
    """Generator stand-in that always returns the lower end of [0, 1)."""

    def random(self, size=None):
        return 0.0 if size is None else np.zeros(size)


def test_lowest_draw_gives_full_radius_and_finite_field(make_store):
    params = NucleationParameters(count=2, max_radius=0.05)
    seeds = SeedGenerator(params).draw(ZeroGenerator())
    assert all(s.radius == 0.05 for s in seeds)
    store = make_store(shape=(16, 16), spacing=(1.0, 1.0))
    eta = CrystalBuilder(store).nucleate(seeds)
    assert np.all(np.isfinite(eta))


def test_shared_seeds_identical_on_all_ranks(comm):
    seeds = SeedGenerator(NucleationParameters(count=5, seed=9)).draw_shared(comm)
    everyone = comm.allgather(seeds)
    assert all(other == seeds for other in everyone)


def test_build_dispatch(make_store):
    store = make_store(shape=(16, 16))
    builder = CrystalBuilder(store)
    builder.build("nucleation", NucleationParameters(count=3, max_radius=0.2, seed=1))
    assert np.any(store.eta != 0.0)
    with pytest.raises(ValueError):
        builder.build("dendrite")
