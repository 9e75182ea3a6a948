"""Backbone resampling for visualization and downstream consumers.

The kinematics provider returns the backbone at irregular arc lengths chosen
by its ODE integrator. `interpolate_backbone` adds a uniform grid of points
on top of those samples: positions come from a natural cubic spline per axis
(scipy's CubicSpline), orientations from piecewise slerp, both driven by arc
length. Raw samples are copied through untouched.
"""

import logging

import jax.numpy as jnp
import numpy as np
from jax import Array
from scipy.interpolate import CubicSpline

from .core import InterpolatedBackbone, KinematicsSample
from .transforms import quaternion

logger = logging.getLogger(__name__)

DEFAULT_INTERPOLATION_COUNT = 200


def interpolate_backbone(arc_lengths: Array, positions: Array, quaternions: Array,
                         num_points: int = DEFAULT_INTERPOLATION_COUNT) -> InterpolatedBackbone:
    """Densify a raw backbone with `num_points` uniformly spaced samples.

    Args:
        arc_lengths: (n,) strictly monotonic arc lengths, in either direction
        positions: (n, 3) positions at each arc length
        quaternions: (n, 4) (w, x, y, z) orientations at each arc length
        num_points: number of uniformly spaced points to add

    Returns:
        InterpolatedBackbone of num_points + n samples, sorted along arc
        length in the same direction as the input.

    Raises:
        ValueError: for fewer than two samples, mismatched shapes, or arc
            lengths that are not strictly monotonic.
    """
    s = np.asarray(arc_lengths, dtype=np.float64)
    p = np.asarray(positions, dtype=np.float64)
    q = np.asarray(quaternions, dtype=np.float64)
    n = s.shape[0]

    if n < 2:
        raise ValueError(f"Need at least 2 backbone samples, got {n}")
    if num_points < 2:
        raise ValueError(f"Need at least 2 interpolation points, got {num_points}")
    if p.shape != (n, 3) or q.shape != (n, 4):
        raise ValueError(
            f"Backbone shapes disagree: arc_lengths {s.shape}, positions {p.shape}, "
            f"quaternions {q.shape}"
        )

    descending = s[0] > s[-1]
    if descending:
        s, p, q = s[::-1], p[::-1], q[::-1]
    if not np.all(np.diff(s) > 0.0):
        raise ValueError("Backbone arc lengths must be strictly monotonic")

    # Normalized parameters of the raw samples and of the uniform grid
    s0 = s[0]
    total = s[-1] - s[0]
    raw_params = jnp.asarray((s - s0) / total)
    grid = jnp.linspace(0.0, 1.0, num_points)
    grid_s = total * grid + s0

    spline = CubicSpline(s, p, axis=0, bc_type="natural")
    grid_positions = jnp.asarray(spline(np.asarray(grid_s)))
    grid_quaternions = quaternion.interpolate(raw_params, jnp.asarray(q), grid)

    # Merge grid and raw samples, sorted by descending parameter. Raw samples
    # keep their exact arc length and pose.
    params = jnp.concatenate([grid, raw_params])
    order = jnp.argsort(-params, stable=True)

    merged_s = jnp.concatenate([grid_s, jnp.asarray(s)])[order]
    merged_p = jnp.concatenate([grid_positions, jnp.asarray(p)])[order]
    merged_q = jnp.concatenate([grid_quaternions, jnp.asarray(q)])[order]

    if not descending:
        merged_s, merged_p, merged_q = merged_s[::-1], merged_p[::-1], merged_q[::-1]

    logger.debug(f"Interpolated backbone: {n} raw + {num_points} grid samples")
    return InterpolatedBackbone(arc_lengths=merged_s, positions=merged_p, quaternions=merged_q)


def interpolate_sample(sample: KinematicsSample,
                       num_points: int = DEFAULT_INTERPOLATION_COUNT) -> InterpolatedBackbone:
    """Densify the raw backbone carried by a kinematics sample."""
    return interpolate_backbone(
        sample.arc_lengths, sample.backbone_positions, sample.backbone_quaternions, num_points
    )
