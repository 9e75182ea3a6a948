"""Quaternion interpolation utilities in JAX.

Quaternions are (w, x, y, z). Interpolation is normalized spherical linear
interpolation along the shortest arc.
"""

import jax
import jax.numpy as jnp
from typing import Union

# Type aliases
Array = jax.Array
Scalar = Union[float, Array]


def normalize(quaternions: Array) -> Array:
    """Normalize quaternions to unit length."""
    return quaternions / jnp.linalg.norm(quaternions, axis=-1, keepdims=True)


def dot(q0: Array, q1: Array) -> Array:
    return jnp.sum(q0 * q1, axis=-1)


def slerp(q0: Array, q1: Array, t: Scalar) -> Array:
    """
    Spherical linear interpolation between unit quaternions.

    q1 is flipped onto q0's hemisphere first, so the path is the short arc.
    Nearly parallel inputs fall back to normalized linear interpolation.

    Args:
        q0: (..., 4) start quaternion(s)
        q1: (..., 4) end quaternion(s)
        t: scalar or (...,) interpolation parameter in [0, 1]

    Returns:
        (..., 4) unit quaternion(s)
    """
    q0 = normalize(q0)
    q1 = normalize(q1)
    t = jnp.asarray(t)[..., None]

    d = dot(q0, q1)[..., None]
    q1 = jnp.where(d < 0.0, -q1, q1)
    d = jnp.abs(d)

    nearly_parallel = d > 1.0 - 1e-9
    theta = jnp.arccos(jnp.clip(d, -1.0, 1.0))
    sin_theta = jnp.where(nearly_parallel, 1.0, jnp.sin(theta))

    w0 = jnp.where(nearly_parallel, 1.0 - t, jnp.sin((1.0 - t) * theta) / sin_theta)
    w1 = jnp.where(nearly_parallel, t, jnp.sin(t * theta) / sin_theta)

    return normalize(w0 * q0 + w1 * q1)


def interpolate(knots: Array, quaternions: Array, params: Array) -> Array:
    """
    Piecewise slerp through (knot, quaternion) pairs.

    Args:
        knots: (n,) strictly increasing parameters
        quaternions: (n, 4) quaternion at each knot
        params: (m,) query parameters, clamped to [knots[0], knots[-1]]

    Returns:
        (m, 4) interpolated unit quaternions
    """
    params = jnp.clip(params, knots[0], knots[-1])
    # index of the left knot of the containing segment
    idx = jnp.clip(jnp.searchsorted(knots, params, side="right") - 1, 0, knots.shape[0] - 2)

    left, right = knots[idx], knots[idx + 1]
    t = (params - left) / (right - left)

    return slerp(quaternions[idx], quaternions[idx + 1], t)
