import asyncio
import math

import numpy as np
import pytest

from site_affinity.graph import GraphModel, GraphNode, build_graph
from site_affinity.params import LayoutParams
from site_affinity.similarity import compute_similarity
from site_affinity.simulation import (
    AsyncioScheduler,
    ForceSimulator,
    ManualScheduler,
    SimulationState,
)


def _dist(snap, a, b):
    (x0, y0), (x1, y1) = snap[a], snap[b]
    return math.hypot(x1 - x0, y1 - y0)


@pytest.fixture
def pair_model(site_factory):
    sites = [site_factory("a", ["Iron"]), site_factory("b", ["Iron"])]
    return build_graph(sites, compute_similarity(sites), threshold=0.2, link_distance=220)


@pytest.fixture
def sample_model(sample_sites):
    return build_graph(sample_sites, compute_similarity(sample_sites))


class TestLifecycle:
    def test_cold_without_model(self):
        sim = ForceSimulator()
        assert sim.state is SimulationState.COLD

    def test_construct_enters_running(self, sample_model):
        sim = ForceSimulator(sample_model)
        assert sim.state is SimulationState.RUNNING
        assert sim.alpha == 1.0

    def test_empty_model_converged_immediately(self):
        sim = ForceSimulator(GraphModel())
        assert sim.state is SimulationState.CONVERGED
        assert sim.tick() == {}
        assert sim.run() == 0
        assert sim.state is SimulationState.CONVERGED

    def test_alpha_decays_multiplicatively(self, sample_model):
        p = LayoutParams()
        sim = ForceSimulator(sample_model, p)
        sim.tick()
        assert sim.alpha == pytest.approx(1.0 - p.alpha_decay)
        sim.tick()
        assert sim.alpha == pytest.approx((1.0 - p.alpha_decay) ** 2)

    def test_run_until_converged(self, sample_model):
        sim = ForceSimulator(sample_model)
        ticks = sim.run()
        assert sim.state is SimulationState.CONVERGED
        assert sim.alpha < sim.params.alpha_min
        assert 250 < ticks < 400

    def test_dispose(self, sample_model):
        sim = ForceSimulator(sample_model)
        sim.dispose()
        assert sim.state is SimulationState.COLD
        assert sim.disposed
        with pytest.raises(RuntimeError):
            sim.tick()

    def test_stop_and_resume(self, sample_model):
        sim = ForceSimulator(sample_model)
        sim.tick()
        alpha = sim.alpha
        sim.stop()
        assert sim.state is SimulationState.COLD
        sim.start()
        assert sim.state is SimulationState.RUNNING
        assert sim.alpha == alpha


class TestForces:
    def test_two_node_link_settles_near_rest_length(self, pair_model):
        sim = ForceSimulator(pair_model)
        sim.run()
        assert sim.state is SimulationState.CONVERGED
        d = _dist(sim.positions(), "a", "b")
        assert 0.9 * 220 <= d <= 1.1 * 220

    def test_rest_length_follows_params(self, site_factory):
        sites = [site_factory("a", ["Iron"]), site_factory("b", ["Iron"])]
        model = build_graph(sites, compute_similarity(sites), link_distance=120)
        sim = ForceSimulator(model, LayoutParams(link_distance=120))
        sim.run()
        d = _dist(sim.positions(), "a", "b")
        assert 0.9 * 120 <= d <= 1.15 * 120

    def test_repulsion_pushes_unlinked_nodes_apart(self, site_factory):
        sites = [site_factory("a"), site_factory("b")]
        model = build_graph(sites, [])
        model.nodes[0].x, model.nodes[0].y = 390.0, 300.0
        model.nodes[1].x, model.nodes[1].y = 410.0, 300.0
        sim = ForceSimulator(model, LayoutParams(collide_radius=0, center_strength=0))
        for _ in range(50):
            sim.tick()
        assert _dist(sim.positions(), "a", "b") > 20.0
        # symmetric: the midpoint does not drift
        (x0, _), (x1, _) = sim.position("a"), sim.position("b")
        assert (x0 + x1) / 2 == pytest.approx(400.0, abs=1e-6)

    def test_collision_enforces_separation(self, site_factory):
        sites = [site_factory("a"), site_factory("b")]
        model = build_graph(sites, [])
        model.nodes[0].x, model.nodes[0].y = 400.0, 300.0
        model.nodes[1].x, model.nodes[1].y = 405.0, 300.0
        sim = ForceSimulator(model, LayoutParams(charge_strength=0, center_strength=0))
        sim.run()
        assert _dist(sim.positions(), "a", "b") >= 0.95 * 2 * 50

    def test_coincident_nodes_are_separated(self, site_factory):
        sites = [site_factory("a"), site_factory("b")]
        model = build_graph(sites, [])
        for n in model.nodes:
            n.x, n.y = 400.0, 300.0
        sim = ForceSimulator(model)
        sim.run()
        snap = sim.positions()
        assert _dist(snap, "a", "b") > 50.0
        assert all(np.isfinite(v) for xy in snap.values() for v in xy)

    def test_centering(self, site_factory):
        model = build_graph([site_factory("a")], [])
        model.nodes[0].x, model.nodes[0].y = 0.0, 0.0
        sim = ForceSimulator(model)
        sim.run()
        x, y = sim.position("a")
        assert x == pytest.approx(400.0, abs=1.0)
        assert y == pytest.approx(300.0, abs=1.0)

    def test_malformed_positions_coerced(self, site_factory):
        model = build_graph([site_factory("a"), site_factory("b")], [])
        model.nodes[0].x, model.nodes[0].y = float("nan"), 5.0
        model.nodes[0].vx = float("inf")
        sim = ForceSimulator(model)
        assert sim.position("a") == (0.0, 5.0)
        snap = sim.tick()
        assert all(np.isfinite(v) for xy in snap.values() for v in xy)

    def test_link_weights_change_layout(self, site_factory):
        sites = [
            site_factory("a", ["Iron", "Gold", "Glass"]),
            site_factory("b", ["Iron", "Gold"]),
        ]
        edges = compute_similarity(sites)
        plain = ForceSimulator(build_graph(sites, edges))
        weighted = ForceSimulator(build_graph(sites, edges), LayoutParams(use_link_weights=True))
        plain.tick()
        weighted.tick()
        assert plain.positions() != weighted.positions()


class TestPinsAndStructure:
    def test_pinned_position_is_exact(self, sample_model):
        sim = ForceSimulator(sample_model)
        sim.pin("keezhadi", 500.0, 500.0)
        assert sim.state is SimulationState.DRAGGING
        snap = sim.tick()
        assert snap["keezhadi"] == (500.0, 500.0)
        assert sample_model.node("keezhadi").pinned
        sim.unpin("keezhadi")
        assert sim.state is SimulationState.RUNNING
        assert not sample_model.node("keezhadi").pinned

    def test_pin_unknown_node(self, sample_model):
        sim = ForceSimulator(sample_model)
        with pytest.raises(KeyError):
            sim.pin("nowhere", 1.0, 1.0)

    def test_structural_change_resets_convergence(self, sample_sites, sample_model):
        sim = ForceSimulator(sample_model)
        sim.run()
        assert sim.state is SimulationState.CONVERGED
        before = sim.positions()

        remaining = sample_sites[:3]
        model2 = build_graph(remaining, compute_similarity(remaining))
        sim.set_graph(model2)
        assert sim.state is SimulationState.RUNNING
        assert sim.alpha == sim.params.alpha_start
        after = sim.positions()
        assert set(after) == {s.id for s in remaining}
        for sid in after:
            assert after[sid] == before[sid]

    def test_new_nodes_get_initial_placement(self, sample_sites, site_factory):
        first = sample_sites[:2]
        sim = ForceSimulator(build_graph(first, compute_similarity(first)))
        sim.run()
        grown = first + [site_factory("newsite", ["Iron"])]
        sim.set_graph(build_graph(grown, compute_similarity(grown)))
        x, y = sim.position("newsite")
        assert np.isfinite(x) and np.isfinite(y)
        assert sim.state is SimulationState.RUNNING

    def test_listener_receives_snapshots(self, sample_model):
        seen = []
        sim = ForceSimulator(sample_model, on_tick=seen.append)
        sim.tick()
        sim.tick()
        assert len(seen) == 2
        assert set(seen[-1]) == {n.id for n in sample_model.nodes}

    def test_nodes_mirror_positions(self, sample_model):
        sim = ForceSimulator(sample_model)
        snap = sim.tick()
        for node in sample_model.nodes:
            assert (node.x, node.y) == snap[node.id]


class TestScheduling:
    def test_manual_scheduler_drives_ticks(self, sample_model):
        sched = ManualScheduler()
        sim = ForceSimulator(sample_model, scheduler=sched)
        assert sched.pending == 1
        sched.run_pending()
        assert sim.tick_count == 1
        assert sched.pending == 1
        sched.run_until_idle()
        assert sim.state is SimulationState.CONVERGED
        assert sched.pending == 0

    def test_dispose_cancels_pending_frame(self, sample_model):
        sched = ManualScheduler()
        sim = ForceSimulator(sample_model, scheduler=sched)
        sim.dispose()
        assert sched.pending == 0
        assert sched.run_pending() == 0

    def test_set_graph_does_not_double_schedule(self, sample_sites, sample_model):
        sched = ManualScheduler()
        sim = ForceSimulator(sample_model, scheduler=sched)
        sim.set_graph(build_graph(sample_sites, compute_similarity(sample_sites)))
        assert sched.pending == 1

    def test_converged_then_reheated_schedules_again(self, sample_model):
        sched = ManualScheduler()
        sim = ForceSimulator(sample_model, scheduler=sched)
        sched.run_until_idle()
        assert sched.pending == 0
        sim.reheat()
        assert sched.pending == 1
        assert sim.state is SimulationState.RUNNING

    def test_asyncio_scheduler(self, sample_model):
        async def drive():
            sim = ForceSimulator(sample_model, scheduler=AsyncioScheduler(interval=0))
            for _ in range(10_000):
                if sim.state is SimulationState.CONVERGED:
                    break
                await asyncio.sleep(0)
            return sim

        sim = asyncio.run(drive())
        assert sim.state is SimulationState.CONVERGED
        assert sim.tick_count > 0
