from __future__ import annotations

from dataclasses import dataclass

# Standard D3 cooling: alpha goes from 1 to alpha_min in ~300 ticks.
DEFAULT_ALPHA_MIN = 0.001
DEFAULT_ALPHA_DECAY = 1.0 - DEFAULT_ALPHA_MIN ** (1.0 / 300.0)


@dataclass
class LayoutParams:
    # Graph construction
    threshold: float = 0.2

    # Forces
    charge_strength: float = -400.0
    link_distance: float = 220.0
    collide_radius: float = 50.0
    center_strength: float = 0.1
    use_link_weights: bool = False
    distance_min: float = 1.0

    # Canvas (centre of the layout is width/2, height/2)
    width: float = 800.0
    height: float = 600.0

    # Cooling schedule
    alpha_start: float = 1.0
    alpha_min: float = DEFAULT_ALPHA_MIN
    alpha_decay: float = DEFAULT_ALPHA_DECAY
    alpha_target: float = 0.0
    drag_alpha_target: float = 0.3
    velocity_decay: float = 0.4

    # Jiggle RNG for coincident nodes
    seed: int = 0

    @property
    def center(self):
        return self.width / 2.0, self.height / 2.0


def validate_params(p: LayoutParams) -> LayoutParams:
    problems = []
    if not 0.0 <= p.threshold <= 1.0:
        problems.append(f"threshold must be in [0, 1] (got {p.threshold})")
    if p.link_distance <= 0:
        problems.append(f"link_distance must be > 0 (got {p.link_distance})")
    if p.collide_radius < 0:
        problems.append(f"collide_radius must be >= 0 (got {p.collide_radius})")
    if p.distance_min <= 0:
        problems.append(f"distance_min must be > 0 (got {p.distance_min})")
    if p.width <= 0 or p.height <= 0:
        problems.append(f"canvas must be non-empty (got {p.width}x{p.height})")
    for name in ("alpha_start", "alpha_min", "alpha_target", "drag_alpha_target"):
        v = getattr(p, name)
        if not 0.0 <= v <= 1.0:
            problems.append(f"{name} must be in [0, 1] (got {v})")
    if not 0.0 < p.alpha_decay <= 1.0:
        problems.append(f"alpha_decay must be in (0, 1] (got {p.alpha_decay})")
    if not 0.0 <= p.velocity_decay <= 1.0:
        problems.append(f"velocity_decay must be in [0, 1] (got {p.velocity_decay})")
    if p.center_strength < 0:
        problems.append(f"center_strength must be >= 0 (got {p.center_strength})")
    if problems:
        raise ValueError("Invalid layout parameters: " + "; ".join(problems))
    return p
