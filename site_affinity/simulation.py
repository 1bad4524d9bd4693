"""
Force-directed layout simulation
================================

A headless, single-threaded force simulation over a ``GraphModel``. Each
``tick()`` advances the layout by one step:

1) many-body repulsion between every pair of nodes,
2) spring attraction along links towards their rest distance,
3) a centering pull of the node centroid towards the canvas centre,
4) collision separation for nodes closer than two radii,

followed by a semi-implicit Euler step (velocity decay, then position += v)
and a multiplicative cooling of ``alpha``. Pinned nodes are written to their
pin every tick with zero velocity.

Node state lives in numpy arrays indexed like ``model.nodes``; links are
integer index arrays resolved once in ``set_graph``. Nothing here blocks or
spawns threads: the simulator asks a ``Scheduler`` for the next frame and
does exactly one tick per callback.

States:
  COLD       not scheduled (never started, stopped, or disposed)
  RUNNING    ticking on the scheduler cadence
  DRAGGING   RUNNING with at least one pinned node
  CONVERGED  alpha < alpha_min; no further frames requested until reheated
"""

from __future__ import annotations

import asyncio
import math
from enum import Enum
from typing import Callable, Dict, List, Optional, Protocol, Tuple

import numpy as np

from .graph import GraphModel
from .params import LayoutParams, validate_params
from .utils import log

Snapshot = Dict[str, Tuple[float, float]]
TickListener = Callable[[Snapshot], None]

_INITIAL_RADIUS = 10.0
_INITIAL_ANGLE = math.pi * (3.0 - math.sqrt(5.0))
_JIGGLE = 1e-6


class SimulationState(str, Enum):
    COLD = "cold"
    RUNNING = "running"
    DRAGGING = "dragging"
    CONVERGED = "converged"


# ---------------------------------------------------------------------
# Schedulers
# ---------------------------------------------------------------------
class Scheduler(Protocol):
    def schedule(self, callback: Callable[[], None]) -> object: ...

    def cancel(self, handle: object) -> None: ...


class ManualScheduler:
    """Frame queue pumped by the host (a render loop, or a test)."""

    def __init__(self) -> None:
        self._pending: Dict[int, Callable[[], None]] = {}
        self._next = 0

    def schedule(self, callback: Callable[[], None]) -> int:
        handle = self._next
        self._next += 1
        self._pending[handle] = callback
        return handle

    def cancel(self, handle: object) -> None:
        self._pending.pop(handle, None)  # type: ignore[arg-type]

    @property
    def pending(self) -> int:
        return len(self._pending)

    def run_pending(self) -> int:
        """Fire the callbacks queued so far (one frame). Returns how many ran."""
        batch = list(self._pending.values())
        self._pending.clear()
        for cb in batch:
            cb()
        return len(batch)

    def run_until_idle(self, max_frames: int = 100_000) -> int:
        frames = 0
        while self._pending and frames < max_frames:
            self.run_pending()
            frames += 1
        return frames


class AsyncioScheduler:
    """One callback per frame interval on the running asyncio loop."""

    def __init__(
        self,
        interval: float = 1.0 / 60.0,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ) -> None:
        self.interval = float(interval)
        self._loop = loop

    def schedule(self, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        return loop.call_later(self.interval, callback)

    def cancel(self, handle: object) -> None:
        handle.cancel()  # type: ignore[attr-defined]


# ---------------------------------------------------------------------
# Simulator
# ---------------------------------------------------------------------
class ForceSimulator:
    def __init__(
        self,
        model: Optional[GraphModel] = None,
        params: Optional[LayoutParams] = None,
        scheduler: Optional[Scheduler] = None,
        on_tick: Optional[TickListener] = None,
    ) -> None:
        self.params = validate_params(params or LayoutParams())
        self.scheduler = scheduler
        self._listeners: List[TickListener] = [on_tick] if on_tick else []
        self._rng = np.random.default_rng(self.params.seed)
        self._handle: Optional[object] = None
        self._disposed = False
        self._state = SimulationState.COLD

        self.model = GraphModel()
        self._pos = np.zeros((0, 2))
        self._vel = np.zeros((0, 2))
        self._pin = np.zeros((0, 2))
        self._src = np.zeros(0, dtype=np.int64)
        self._tgt = np.zeros(0, dtype=np.int64)
        self._dist = np.zeros(0)
        self._strength = np.zeros(0)
        self._bias = np.zeros(0)

        self.alpha = 0.0
        self.alpha_target = self.params.alpha_target
        self.tick_count = 0

        if model is not None:
            self.set_graph(model)

    # -----------------------------------------------------------------
    # State
    # -----------------------------------------------------------------
    @property
    def state(self) -> SimulationState:
        if self._disposed or self._state is SimulationState.COLD:
            return SimulationState.COLD
        if self._state is SimulationState.CONVERGED:
            return SimulationState.CONVERGED
        if self._pinned_mask().any():
            return SimulationState.DRAGGING
        return SimulationState.RUNNING

    @property
    def disposed(self) -> bool:
        return self._disposed

    def _pinned_mask(self) -> np.ndarray:
        return ~np.isnan(self._pin[:, 0])

    def _check_alive(self) -> None:
        if self._disposed:
            raise RuntimeError("ForceSimulator has been disposed")

    # -----------------------------------------------------------------
    # Graph (structural changes)
    # -----------------------------------------------------------------
    def set_graph(self, model: GraphModel) -> None:
        """Replace the node/link set. Surviving nodes (same site id) keep their
        position, velocity and pin; everything else about removed nodes is
        dropped. Always reheats to RUNNING (CONVERGED if the model is empty)."""
        self._check_alive()
        n = len(model.nodes)
        previous = {node.id: k for k, node in enumerate(self.model.nodes)}
        old_pos, old_vel, old_pin = self._pos, self._vel, self._pin

        pos = np.full((n, 2), np.nan)
        vel = np.zeros((n, 2))
        pin = np.full((n, 2), np.nan)
        cx, cy = self.params.center
        malformed = 0

        for i, node in enumerate(model.nodes):
            if node.index != i:
                raise ValueError(f"Node {node.id} has index {node.index}, expected {i}")
            k = previous.get(node.id)
            if k is not None:
                pos[i] = old_pos[k]
                vel[i] = old_vel[k]
                pin[i] = old_pin[k]
                continue
            if node.x is None and node.y is None:
                # phyllotaxis placement around the canvas centre
                r = _INITIAL_RADIUS * math.sqrt(0.5 + i)
                a = i * _INITIAL_ANGLE
                pos[i] = (cx + r * math.cos(a), cy + r * math.sin(a))
            else:
                vals = [node.x, node.y, node.vx, node.vy]
                clean = [_finite_or_zero(v) for v in vals]
                malformed += sum(1 for v, c in zip(vals, clean) if v != c)
                pos[i] = clean[:2]
                vel[i] = clean[2:]
            if node.pinned:
                pin[i] = (node.fx, node.fy)

        if malformed:
            log(f"WARN: {malformed} undefined/non-finite node value(s) coerced to 0")

        src, tgt, dist, score = [], [], [], []
        for link in model.links:
            s, t = link.index_pair
            if not (0 <= s < n and 0 <= t < n) or model.nodes[s] is not link.source \
                    or model.nodes[t] is not link.target:
                raise ValueError(
                    f"Link {link.source.id} -> {link.target.id} references a node "
                    "outside this model"
                )
            src.append(s)
            tgt.append(t)
            dist.append(link.distance)
            score.append(link.score)

        self._src = np.asarray(src, dtype=np.int64)
        self._tgt = np.asarray(tgt, dtype=np.int64)
        self._dist = np.asarray(dist, dtype=float)
        count = np.bincount(
            np.concatenate([self._src, self._tgt]), minlength=n
        ).astype(float)
        if len(self._src):
            cs, ct = count[self._src], count[self._tgt]
            self._strength = 1.0 / np.minimum(cs, ct)
            if self.params.use_link_weights:
                self._strength = self._strength * np.asarray(score, dtype=float)
            self._bias = cs / (cs + ct)
        else:
            self._strength = np.zeros(0)
            self._bias = np.zeros(0)

        self.model = model
        self._pos, self._vel, self._pin = pos, vel, pin
        self.alpha = self.params.alpha_start
        self.tick_count = 0
        self._sync_nodes()

        if n == 0:
            self._state = SimulationState.CONVERGED
            self._cancel()
        else:
            self._state = SimulationState.RUNNING
            self._schedule()

    # -----------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------
    def start(self) -> None:
        """Resume ticking (alpha unchanged)."""
        self._check_alive()
        if not len(self._pos):
            self._state = SimulationState.CONVERGED
            return
        self._state = SimulationState.RUNNING
        self._schedule()

    restart = start

    def stop(self) -> None:
        """Stop scheduling; state and positions are kept."""
        self._cancel()
        if not self._disposed:
            self._state = SimulationState.COLD

    def reheat(self, alpha_target: Optional[float] = None) -> None:
        self._check_alive()
        self.alpha = self.params.alpha_start
        if alpha_target is not None:
            self.alpha_target = float(alpha_target)
        self.start()

    def set_alpha_target(self, value: float) -> None:
        self.alpha_target = float(value)

    def dispose(self) -> None:
        """Cancel any pending frame and release all state. Irreversible."""
        self._cancel()
        self._listeners.clear()
        self.model = GraphModel()
        self._pos = np.zeros((0, 2))
        self._vel = np.zeros((0, 2))
        self._pin = np.zeros((0, 2))
        self._src = self._tgt = np.zeros(0, dtype=np.int64)
        self._dist = self._strength = self._bias = np.zeros(0)
        self._disposed = True
        self._state = SimulationState.COLD

    def add_listener(self, fn: TickListener) -> None:
        self._listeners.append(fn)

    def remove_listener(self, fn: TickListener) -> None:
        if fn in self._listeners:
            self._listeners.remove(fn)

    def _schedule(self) -> None:
        if self.scheduler is None or self._handle is not None or self._disposed:
            return
        self._handle = self.scheduler.schedule(self._on_frame)

    def _cancel(self) -> None:
        if self._handle is not None and self.scheduler is not None:
            self.scheduler.cancel(self._handle)
        self._handle = None

    def _on_frame(self) -> None:
        self._handle = None
        if self._disposed or self._state is not SimulationState.RUNNING:
            return
        self.tick()
        if self._state is SimulationState.RUNNING:
            self._schedule()

    # -----------------------------------------------------------------
    # Pins
    # -----------------------------------------------------------------
    def pin(self, node_id: str, x: float, y: float) -> None:
        self._check_alive()
        node = self.model.index[node_id]
        self._pin[node.index] = (_finite_or_zero(x), _finite_or_zero(y))
        node.fx, node.fy = float(self._pin[node.index, 0]), float(self._pin[node.index, 1])

    def unpin(self, node_id: str) -> None:
        self._check_alive()
        node = self.model.index[node_id]
        self._pin[node.index] = np.nan
        node.fx = node.fy = None

    def is_pinned(self, node_id: str) -> bool:
        return bool(self._pinned_mask()[self.model.index[node_id].index])

    def position(self, node_id: str) -> Tuple[float, float]:
        k = self.model.index[node_id].index
        return float(self._pos[k, 0]), float(self._pos[k, 1])

    # -----------------------------------------------------------------
    # Integration
    # -----------------------------------------------------------------
    def tick(self) -> Snapshot:
        self._check_alive()
        n = len(self._pos)
        if n == 0:
            self._state = SimulationState.CONVERGED
            self._cancel()
            return {}

        p = self.params
        a = self.alpha
        self._sanitize("before tick")

        if n > 1:
            self._separate_coincident()
            if p.charge_strength:
                self._apply_many_body(a)
        if len(self._src):
            self._apply_links(a)
        if p.center_strength:
            self._apply_center()
        if n > 1 and p.collide_radius > 0:
            self._apply_collide()

        self._vel *= 1.0 - p.velocity_decay
        self._pos += self._vel
        pinned = self._pinned_mask()
        if pinned.any():
            self._pos[pinned] = self._pin[pinned]
            self._vel[pinned] = 0.0
        self._sanitize("after tick")

        self.alpha += (self.alpha_target - self.alpha) * p.alpha_decay
        self.tick_count += 1
        if self.alpha < p.alpha_min:
            self._state = SimulationState.CONVERGED
            self._cancel()

        self._sync_nodes()
        snap = self.positions()
        for fn in list(self._listeners):
            fn(snap)
        return snap

    def run(self, max_ticks: int = 10_000) -> int:
        """Tick headlessly until CONVERGED (or ``max_ticks``). Returns ticks run."""
        self._check_alive()
        ticks = 0
        if not len(self._pos):
            self.tick()
            return 0
        while self._state is not SimulationState.CONVERGED and ticks < max_ticks:
            self.tick()
            ticks += 1
        if self._state is not SimulationState.CONVERGED:
            log(f"WARN: layout not converged after {ticks} ticks (alpha={self.alpha:.4f})")
        return ticks

    def _separate_coincident(self) -> None:
        d = self._pos[None, :, :] - self._pos[:, None, :]
        same = (d == 0).all(axis=-1)
        np.fill_diagonal(same, False)
        if not same.any():
            return
        _, j = np.nonzero(np.triu(same))
        for k in np.unique(j):
            self._pos[k] += (self._rng.random(2) - 0.5) * _JIGGLE

    def _apply_many_body(self, alpha: float) -> None:
        p = self.params
        # d[i, j] = pos[j] - pos[i]; negative strength pushes i away from j
        d = self._pos[None, :, :] - self._pos[:, None, :]
        l2 = np.maximum((d ** 2).sum(axis=-1), p.distance_min ** 2)
        w = p.charge_strength * alpha / l2
        np.fill_diagonal(w, 0.0)
        self._vel += (d * w[:, :, None]).sum(axis=1)

    def _apply_links(self, alpha: float) -> None:
        s, t = self._src, self._tgt
        d = (self._pos[t] + self._vel[t]) - (self._pos[s] + self._vel[s])
        length = np.sqrt((d ** 2).sum(axis=1))
        safe = np.where(length > 0, length, 1.0)
        f = np.where(length > 0, (length - self._dist) / safe, 0.0)
        f = f * alpha * self._strength
        delta = d * f[:, None]
        np.add.at(self._vel, t, -delta * self._bias[:, None])
        np.add.at(self._vel, s, delta * (1.0 - self._bias)[:, None])

    def _apply_center(self) -> None:
        centre = np.asarray(self.params.center, dtype=float)
        shift = (centre - self._pos.mean(axis=0)) * self.params.center_strength
        self._vel += shift

    def _apply_collide(self) -> None:
        r = 2.0 * self.params.collide_radius
        q = self._pos + self._vel
        d = q[:, None, :] - q[None, :, :]
        length = np.sqrt((d ** 2).sum(axis=-1))
        overlap = np.triu(length < r, k=1)
        i, j = np.nonzero(overlap)
        if not len(i):
            return
        dij = d[i, j]
        lij = length[i, j]
        zero = lij == 0
        if zero.any():
            dij[zero] = (self._rng.random((int(zero.sum()), 2)) - 0.5) * _JIGGLE
            lij = np.sqrt((dij ** 2).sum(axis=1))
        push = dij * ((r - lij) / lij)[:, None]
        # equal radii: each side takes half the correction
        np.add.at(self._vel, i, push * 0.5)
        np.add.at(self._vel, j, -push * 0.5)

    def _sanitize(self, stage: str) -> None:
        bad = ~np.isfinite(self._pos) | ~np.isfinite(self._vel)
        if bad.any():
            log(
                f"WARN: {int(bad.sum())} non-finite position/velocity value(s) "
                f"coerced to 0 {stage} {self.tick_count}"
            )
            self._pos[~np.isfinite(self._pos)] = 0.0
            self._vel[~np.isfinite(self._vel)] = 0.0

    # -----------------------------------------------------------------
    # Snapshots
    # -----------------------------------------------------------------
    def positions(self) -> Snapshot:
        return {
            node.id: (float(self._pos[k, 0]), float(self._pos[k, 1]))
            for k, node in enumerate(self.model.nodes)
        }

    def _sync_nodes(self) -> None:
        for k, node in enumerate(self.model.nodes):
            node.x, node.y = float(self._pos[k, 0]), float(self._pos[k, 1])
            node.vx, node.vy = float(self._vel[k, 0]), float(self._vel[k, 1])
            if np.isnan(self._pin[k, 0]):
                node.fx = node.fy = None
            else:
                node.fx, node.fy = float(self._pin[k, 0]), float(self._pin[k, 1])


def _finite_or_zero(v: object) -> float:
    try:
        f = float(v)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0.0
    return f if math.isfinite(f) else 0.0
