from __future__ import annotations

from typing import Optional, Set

from .simulation import ForceSimulator
from .utils import log


class DragController:
    """Pointer-drag contract for a host UI.

    The host calls ``on_drag_start`` / ``on_drag_move`` / ``on_drag_end``
    between frames. A dragged node is pinned under the pointer; while any
    drag is active the simulation is held warm at ``drag_alpha_target``.
    """

    def __init__(self, simulator: ForceSimulator) -> None:
        self.simulator = simulator
        self.active: Set[str] = set()

    def on_drag_start(
        self, node_id: str, x: Optional[float] = None, y: Optional[float] = None
    ) -> None:
        sim = self.simulator
        if node_id not in sim.model.index:
            raise KeyError(f"Unknown node: {node_id}")
        if x is None or y is None:
            x, y = sim.position(node_id)
        sim.pin(node_id, x, y)
        self.active.add(node_id)
        sim.reheat(alpha_target=sim.params.drag_alpha_target)

    def on_drag_move(self, node_id: str, x: float, y: float) -> None:
        if not self._known(node_id, "move"):
            return
        self.simulator.pin(node_id, x, y)
        if node_id not in self.active:
            # move without a start (e.g. after a rebuild): treat as a fresh drag
            self.active.add(node_id)
            self.simulator.reheat(alpha_target=self.simulator.params.drag_alpha_target)

    def on_drag_end(self, node_id: str) -> None:
        self.active.discard(node_id)
        if self._known(node_id, "end"):
            self.simulator.unpin(node_id)
        if not self.active:
            self.simulator.set_alpha_target(self.simulator.params.alpha_target)

    def _known(self, node_id: str, event: str) -> bool:
        if node_id in self.simulator.model.index:
            return True
        self.active.discard(node_id)
        log(f"WARN: drag {event} for node '{node_id}' not in the current graph; ignored")
        return False

    def reset(self) -> None:
        """Forget active drags (e.g. after the node set was replaced)."""
        for node_id in list(self.active):
            if node_id in self.simulator.model.index:
                self.simulator.unpin(node_id)
        self.active.clear()
        self.simulator.set_alpha_target(self.simulator.params.alpha_target)
