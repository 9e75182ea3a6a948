"""SO(3) and so(3) operations in JAX.

Rotation matrices, axis-angle vectors and (w, x, y, z) quaternions. All
functions are pure, JIT-able, and operate on JAX arrays.
"""

import jax
import jax.numpy as jnp

Array = jax.Array


def skew_symmetric(v: Array) -> Array:
    """
    Convert 3D vector to skew-symmetric matrix.

    Args:
        v: (..., 3) vector

    Returns:
        (..., 3, 3) skew-symmetric matrix
    """
    zeros = jnp.zeros(v.shape[:-1], dtype=v.dtype)

    return jnp.stack([
        jnp.stack([zeros, -v[..., 2], v[..., 1]], axis=-1),
        jnp.stack([v[..., 2], zeros, -v[..., 0]], axis=-1),
        jnp.stack([-v[..., 1], v[..., 0], zeros], axis=-1)
    ], axis=-2)


def vee(S: Array) -> Array:
    """Inverse of skew_symmetric: (..., 3, 3) -> (..., 3)."""
    return jnp.stack([S[..., 2, 1], S[..., 0, 2], S[..., 1, 0]], axis=-1)


def exp(log_r: Array) -> Array:
    """
    SO(3) exponential map: convert axis-angle vector to rotation matrix.

    Rodrigues' formula, with a Taylor expansion near zero.

    Args:
        log_r: (..., 3) array of axis-angle vectors

    Returns:
        (..., 3, 3) array of rotation matrices
    """
    angle = jnp.linalg.norm(log_r, axis=-1, keepdims=True)
    small_angle = angle < 1e-8

    cos_angle = jnp.where(small_angle, 1.0 - 0.5 * angle**2, jnp.cos(angle))
    sin_angle = jnp.where(small_angle, angle - angle**3 / 6.0, jnp.sin(angle))

    safe_angle = jnp.where(small_angle, 1.0, angle)
    axis = jnp.where(small_angle, log_r, log_r / safe_angle)

    K = skew_symmetric(axis)
    I = jnp.broadcast_to(jnp.eye(3, dtype=log_r.dtype), log_r.shape[:-1] + (3, 3))

    return (I +
            sin_angle[..., None] * K +
            (1.0 - cos_angle)[..., None] * jnp.matmul(K, K))


def log(R: Array) -> Array:
    """
    SO(3) logarithm map: convert rotation matrix to axis-angle vector.

    This is the "log map" used to turn a small rotation delta into a twist.

    Args:
        R: (..., 3, 3) array of rotation matrices

    Returns:
        (..., 3) array of axis-angle vectors
    """
    trace = jnp.trace(R, axis1=-2, axis2=-1)
    cos_angle = jnp.clip((trace - 1.0) / 2.0, -1.0, 1.0)
    angle = jnp.arccos(cos_angle)

    small_angle = angle < 1e-8
    near_pi = jnp.abs(angle - jnp.pi) < 1e-6

    skew_part = vee(R - jnp.swapaxes(R, -1, -2))

    # theta / (2 sin theta) -> 1/2 as theta -> 0
    sin_angle = jnp.where(small_angle, 1.0, jnp.sin(angle))
    scale = jnp.where(small_angle, 0.5, angle / (2.0 * sin_angle))
    w_general = scale[..., None] * skew_part

    # Near pi the skew part vanishes; recover the axis from (R + I) / 2
    B = (R + jnp.eye(3, dtype=R.dtype)) / 2.0
    diag_vals = jnp.diagonal(B, axis1=-2, axis2=-1)
    max_idx = jnp.argmax(diag_vals, axis=-1)
    axis_pi = jnp.take_along_axis(B, max_idx[..., None, None], axis=-1)[..., 0]
    axis_pi = axis_pi / jnp.linalg.norm(axis_pi, axis=-1, keepdims=True)

    return jnp.where(near_pi[..., None], angle[..., None] * axis_pi, w_general)


def from_axis_angle(axis: Array, angle) -> Array:
    """Rotation of `angle` radians about `axis` (normalized here)."""
    axis = axis / jnp.linalg.norm(axis, axis=-1, keepdims=True)
    return exp(axis * jnp.asarray(angle)[..., None])


def from_rpy(roll, pitch, yaw) -> Array:
    """Rotation from roll-pitch-yaw angles: R = Rz(yaw) @ Ry(pitch) @ Rx(roll)."""
    R_x = from_axis_angle(jnp.array([1.0, 0.0, 0.0]), roll)
    R_y = from_axis_angle(jnp.array([0.0, 1.0, 0.0]), pitch)
    R_z = from_axis_angle(jnp.array([0.0, 0.0, 1.0]), yaw)
    return R_z @ R_y @ R_x


def orthonormalize(R: Array) -> Array:
    """
    Gram-Schmidt orthonormalization of the columns of R.

    The first column keeps its direction, the second is made orthogonal to the
    first, and the third orthogonal to both. Used to scrub drift from rotations
    assembled out of streamed (slightly non-unit) quaternions.

    Args:
        R: (..., 3, 3) approximately orthonormal matrix

    Returns:
        (..., 3, 3) rotation matrix
    """
    c0, c1, c2 = R[..., :, 0], R[..., :, 1], R[..., :, 2]

    def _unit(v):
        return v / jnp.linalg.norm(v, axis=-1, keepdims=True)

    def _dot(a, b):
        return jnp.sum(a * b, axis=-1, keepdims=True)

    e0 = _unit(c0)
    e1 = _unit(c1 - _dot(c1, e0) * e0)
    e2 = c2 - _dot(c2, e0) * e0
    e2 = _unit(e2 - _dot(e2, e1) * e1)

    return jnp.stack([e0, e1, e2], axis=-1)


def from_quaternion(quaternions: Array) -> Array:
    """
    Convert quaternions to rotation matrices.

    Args:
        quaternions: (..., 4) array of quaternions in (w, x, y, z) format

    Returns:
        (..., 3, 3) array of rotation matrices
    """
    quaternions = quaternions / jnp.linalg.norm(quaternions, axis=-1, keepdims=True)
    w, x, y, z = jnp.moveaxis(quaternions, -1, 0)

    xx, yy, zz = x*x, y*y, z*z
    wx, wy, wz = w*x, w*y, w*z
    xy, xz, yz = x*y, x*z, y*z

    return jnp.stack([
        jnp.stack([1 - 2*(yy + zz), 2*(xy - wz), 2*(xz + wy)], axis=-1),
        jnp.stack([2*(xy + wz), 1 - 2*(xx + zz), 2*(yz - wx)], axis=-1),
        jnp.stack([2*(xz - wy), 2*(yz + wx), 1 - 2*(xx + yy)], axis=-1)
    ], axis=-2)


def to_quaternion(matrix: Array) -> Array:
    """
    Convert rotation matrices to quaternions (w, x, y, z).

    Picks the numerically largest of the four quaternion components as the
    pivot, so the result is stable for every rotation including half turns.
    The scalar part of the result is non-negative.

    Args:
        matrix: (..., 3, 3) array of rotation matrices

    Returns:
        (..., 4) array of unit quaternions
    """
    m00, m11, m22 = matrix[..., 0, 0], matrix[..., 1, 1], matrix[..., 2, 2]
    m01, m02, m10 = matrix[..., 0, 1], matrix[..., 0, 2], matrix[..., 1, 0]
    m12, m20, m21 = matrix[..., 1, 2], matrix[..., 2, 0], matrix[..., 2, 1]

    eps = jnp.finfo(matrix.dtype).eps
    # 4*w^2, 4*x^2, 4*y^2, 4*z^2
    pivots = jnp.stack([
        1.0 + m00 + m11 + m22,
        1.0 + m00 - m11 - m22,
        1.0 - m00 + m11 - m22,
        1.0 - m00 - m11 + m22,
    ], axis=-1)

    candidates = jnp.stack([
        jnp.stack([pivots[..., 0], m21 - m12, m02 - m20, m10 - m01], axis=-1),
        jnp.stack([m21 - m12, pivots[..., 1], m01 + m10, m02 + m20], axis=-1),
        jnp.stack([m02 - m20, m01 + m10, pivots[..., 2], m12 + m21], axis=-1),
        jnp.stack([m10 - m01, m02 + m20, m12 + m21, pivots[..., 3]], axis=-1),
    ], axis=-2)

    best = jnp.argmax(pivots, axis=-1)
    q = jnp.take_along_axis(candidates, best[..., None, None], axis=-2)[..., 0, :]
    q = q / (2.0 * jnp.sqrt(jnp.maximum(jnp.max(pivots, axis=-1), eps)))[..., None]

    q = jnp.where(q[..., 0:1] < 0, -q, q)
    return q / jnp.linalg.norm(q, axis=-1, keepdims=True)
