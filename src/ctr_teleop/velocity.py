"""Velocity saturation for joint increments and task-space twists.

Both limiters work on per-tick increments and take the control rate to
convert to and from speeds. They are pure and return masks describing what
was saturated.
"""

from typing import Tuple

import jax.numpy as jnp
from jax import Array


def saturate_joint_velocities(delta_q: Array, rate, max_rotation_speed=0.8,
                              max_translation_speed=5e-3) -> Tuple[Array, Array]:
    """
    Clamp each joint increment so its speed stays within limits.

    Each component is multiplied by `rate` to get a commanded speed, clamped
    to the signed maximum (rotation limit for the first three components,
    translation limit for the last three) and divided back by `rate`.

    Args:
        delta_q: (6,) joint increment for one tick
        rate: control rate in Hz
        max_rotation_speed: rad/s
        max_translation_speed: m/s

    Returns:
        (saturated increment, (6,) bool mask of clamped components)
    """
    speed = delta_q * rate
    limit = jnp.concatenate([
        jnp.full(3, max_rotation_speed, dtype=speed.dtype),
        jnp.full(3, max_translation_speed, dtype=speed.dtype),
    ])
    saturated = jnp.abs(speed) > limit
    speed = jnp.where(saturated, jnp.sign(speed) * limit, speed)
    return speed / rate, saturated


def scale_twist(twist: Array, rate, max_linear_speed=0.1,
                max_angular_speed=2.5) -> Tuple[Array, Array]:
    """
    Scale down the linear and angular halves of a per-tick twist.

    Each half whose norm exceeds its per-tick maximum (max speed / rate) is
    scaled by max / norm, preserving its direction; halves within the limit
    are returned unchanged.

    Args:
        twist: (6,) [vx, vy, vz, wx, wy, wz] increment for one tick
        rate: control rate in Hz
        max_linear_speed: m/s
        max_angular_speed: rad/s

    Returns:
        (scaled twist, (2,) bool mask: [linear scaled, angular scaled])
    """
    max_step = jnp.array([max_linear_speed, max_angular_speed]) / rate
    norms = jnp.stack([jnp.linalg.norm(twist[:3]), jnp.linalg.norm(twist[3:])])
    scaled = norms > max_step
    gain = jnp.where(scaled, max_step / jnp.where(scaled, norms, 1.0), 1.0)
    return jnp.concatenate([twist[:3] * gain[0], twist[3:] * gain[1]]), scaled
