"""Joint-space reparameterization between beta-space and x-space.

A joint vector is (6,): three tube rotations followed by three tube
translations, outermost tube first. In beta-space the translations are the
absolute carriage positions (beta <= 0 means retracted behind the front
plate). In x-space they are the exposed lengths of each tube beyond the next
tube out, so the joint-limit box is axis-aligned:

    x1 = L0 - L1 + beta1 - beta2
    x2 = L1 - L2 + beta2 - beta3
    x3 = L2 + beta3

Rotations pass through unchanged.
"""

import jax.numpy as jnp
from jax import Array


def to_x(q_beta: Array, L: Array) -> Array:
    """Map a beta-space joint vector to x-space."""
    rot, beta = q_beta[..., :3], q_beta[..., 3:]
    x = jnp.stack([
        L[0] - L[1] + beta[..., 0] - beta[..., 1],
        L[1] - L[2] + beta[..., 1] - beta[..., 2],
        L[2] + beta[..., 2],
    ], axis=-1)
    return jnp.concatenate([rot, x], axis=-1)


def to_beta(q_x: Array, L: Array) -> Array:
    """Map an x-space joint vector back to beta-space (inverse of to_x)."""
    rot, x = q_x[..., :3], q_x[..., 3:]
    beta = jnp.stack([
        x[..., 0] + x[..., 1] + x[..., 2] - L[0],
        x[..., 1] + x[..., 2] - L[1],
        x[..., 2] - L[2],
    ], axis=-1)
    return jnp.concatenate([rot, beta], axis=-1)


def reparam_jacobian() -> Array:
    """d(q_beta)/d(q_x): identity on rotations, triangular ones on translations."""
    dbeta_dx = jnp.array([
        [1.0, 1.0, 1.0],
        [0.0, 1.0, 1.0],
        [0.0, 0.0, 1.0],
    ])
    J = jnp.zeros((6, 6))
    J = J.at[:3, :3].set(jnp.eye(3))
    J = J.at[3:, 3:].set(dbeta_dx)
    return J


def translation_upper_bounds(L: Array) -> Array:
    """Largest admissible x for each tube: [L0 - L1, L1 - L2, L2]."""
    return jnp.stack([L[0] - L[1], L[1] - L[2], L[2]])
