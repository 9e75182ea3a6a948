"""SE(3) homogeneous transforms in JAX.

Assembly, inversion and compaction of 4x4 rigid-body transforms, plus the
small-motion twist extraction used by the teleoperation loop. All functions
are pure, JIT-able, and operate on JAX arrays.
"""

import jax
import jax.numpy as jnp

from . import so3

Array = jax.Array


def from_position_and_rotation(p: Array, R: Array, orthonormal: bool = True) -> Array:
    """
    Construct SE(3) transform from position and rotation.

    Args:
        p: (..., 3) position vector
        R: (..., 3, 3) rotation matrix
        orthonormal: re-orthonormalize R before assembly

    Returns:
        (..., 4, 4) homogeneous transformation matrix
    """
    if orthonormal:
        R = so3.orthonormalize(R)

    batch_shape = jnp.broadcast_shapes(p.shape[:-1], R.shape[:-2])
    p = jnp.broadcast_to(p, batch_shape + (3,))
    R = jnp.broadcast_to(R, batch_shape + (3, 3))

    T = jnp.zeros(batch_shape + (4, 4), dtype=jnp.result_type(p, R))
    T = T.at[..., :3, :3].set(R)
    T = T.at[..., :3, 3].set(p)
    T = T.at[..., 3, 3].set(1.0)

    return T


def from_position_and_quaternion(p: Array, q: Array) -> Array:
    """Transform from a (..., 3) position and a (..., 4) (w, x, y, z) quaternion."""
    return from_position_and_rotation(p, so3.from_quaternion(q))


def from_rotation(R: Array) -> Array:
    """Pure rotation transform (zero translation)."""
    return from_position_and_rotation(jnp.zeros(R.shape[:-2] + (3,), dtype=R.dtype), R)


def inverse(T: Array) -> Array:
    """
    Compute inverse of SE(3) transformation matrix.

    Uses the block structure: T^-1 = [[R^T, -R^T @ t], [0, 1]]

    Args:
        T: (..., 4, 4) transformation matrix

    Returns:
        (..., 4, 4) inverse transformation matrix
    """
    R_inv = jnp.swapaxes(T[..., :3, :3], -1, -2)
    t_inv = -jnp.einsum("...ij,...j->...i", R_inv, T[..., :3, 3])

    return from_position_and_rotation(t_inv, R_inv, orthonormal=False)


def collapse(T: Array) -> Array:
    """
    Compact a transform into a 7-vector [px, py, pz, qw, qx, qy, qz].

    Args:
        T: (..., 4, 4) transformation matrix

    Returns:
        (..., 7) position followed by unit quaternion
    """
    return jnp.concatenate([position(T), so3.to_quaternion(rotation(T))], axis=-1)


def expand(x: Array) -> Array:
    """Inverse of collapse: (..., 7) -> (..., 4, 4)."""
    return from_position_and_quaternion(x[..., :3], x[..., 3:7])


def delta_to_twist(T: Array) -> Array:
    """
    Read a small frame delta as a twist [vx, vy, vz, wx, wy, wz].

    The translation is taken directly and the angular part is the vee of the
    rotation block (first-order log map), expressed in the frame T is
    written in.

    Args:
        T: (..., 4, 4) delta transform, close to identity

    Returns:
        (..., 6) twist
    """
    return jnp.concatenate([position(T), so3.vee(rotation(T))], axis=-1)


def position(T: Array) -> Array:
    """(..., 4, 4) -> (..., 3) translation."""
    return T[..., :3, 3]


def rotation(T: Array) -> Array:
    """(..., 4, 4) -> (..., 3, 3) rotation block."""
    return T[..., :3, :3]


def with_rotation(T: Array, R: Array) -> Array:
    """Return T with its rotation block replaced by R."""
    return T.at[..., :3, :3].set(R)


def with_position(T: Array, p: Array) -> Array:
    """Return T with its translation replaced by p."""
    return T.at[..., :3, 3].set(p)
