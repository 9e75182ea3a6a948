"""Joint-limit handling: avoidance weighting and position-level correction.

Two layers keep the tube translations inside their travel:

* a barrier penalty that stiffens the resolved-rates solve as a tube nears a
  limit (`penalty`, `build_weighting`), with hysteresis so it never resists
  motion away from the limit;
* a position-level correction applied after each update, selected by
  `LimitPolicy`: a simple clamp in x-space or the sequential carriage-spacing
  pass over beta-space carriage positions.

The functions here are pure and return boolean masks instead of logging, so
they can be jit-compiled; `limit_flags` turns masks into `LimitFlag`s.
"""

import enum
from typing import List, NamedTuple, Tuple

import jax.numpy as jnp
from jax import Array
from flax import struct

from . import joints


class LimitFlag(enum.Enum):
    """Saturation events reported by the limiters, per tube (1 = outermost)."""
    VELOCITY_T1_ROT = "velocity_t1_rot"
    VELOCITY_T1_TRANS = "velocity_t1_trans"
    VELOCITY_T2_ROT = "velocity_t2_rot"
    VELOCITY_T2_TRANS = "velocity_t2_trans"
    VELOCITY_T3_ROT = "velocity_t3_rot"
    VELOCITY_T3_TRANS = "velocity_t3_trans"
    T1_BACK = "t1_back"
    T1_FRONT = "t1_front"
    T2_BACK = "t2_back"
    T2_FRONT = "t2_front"
    T3_BACK = "t3_back"
    T3_FRONT = "t3_front"


_ROT_FLAGS = (LimitFlag.VELOCITY_T1_ROT, LimitFlag.VELOCITY_T2_ROT, LimitFlag.VELOCITY_T3_ROT)
_TRANS_FLAGS = (LimitFlag.VELOCITY_T1_TRANS, LimitFlag.VELOCITY_T2_TRANS, LimitFlag.VELOCITY_T3_TRANS)
_FRONT_FLAGS = (LimitFlag.T1_FRONT, LimitFlag.T2_FRONT, LimitFlag.T3_FRONT)
_BACK_FLAGS = (LimitFlag.T1_BACK, LimitFlag.T2_BACK, LimitFlag.T3_BACK)


class LimitPolicy(enum.Enum):
    """Position-level joint-limit correction applied after each solve."""
    SIMPLE_CLAMP = "simple"
    CARRIAGE_SPACING = "carriage"


class WeightingResult(NamedTuple):
    W: Array   # (6, 6) diagonal joint-limit weight
    dh: Array  # (3,) penalty values, next tick's dh_prev


@struct.dataclass
class CarriageGeometry:
    """Actuator carriage stack used by the carriage-spacing correction.

    Index 0 of each 4-tuple is a virtual stage behind the outer tube; indices
    1..3 are the outer, middle and inner tube carriages.

    Attributes:
        front: thickness of each carriage in front of its tube mount.
        back: thickness of each carriage behind its tube mount.
        extension_margin: minimum distance between a tube's tip and the tip of
            the next tube out. The middle tube keeps a larger margin so it
            does not knock off the end effector.
        plate_offset: distance from the front plate to the foremost
            carriage position.
        retraction_step: per-tube margin keeping tubes from retracting behind
            the front plate; tube i keeps (n - i + 1) steps.
    """
    front: Tuple[float, ...] = struct.field(pytree_node=False, default=(0.0, 10e-3, 10e-3, 10e-3))
    back: Tuple[float, ...] = struct.field(pytree_node=False, default=(0.0, 10e-3, 10e-3, 10e-3))
    extension_margin: Tuple[float, ...] = struct.field(pytree_node=False, default=(1e-3, 1e-3, 10e-3, 1e-3))
    plate_offset: float = struct.field(pytree_node=False, default=25e-3)
    retraction_step: float = struct.field(pytree_node=False, default=1e-3)


def penalty(xmin, xmax, x):
    """
    Barrier function for a joint constrained to (xmin, xmax).

    Zero at the midpoint, growing without bound toward either limit:

        |(xmax - xmin)^2 (2x - xmax - xmin) / (4 (xmax - x)^2 (x - xmin)^2)|

    Undefined exactly at the limits; callers keep x strictly interior.
    """
    span = xmax - xmin
    return jnp.abs(span * span * (2.0 * x - xmax - xmin)
                   / (4.0 * (xmax - x) ** 2 * (x - xmin) ** 2))


def build_weighting(x: Array, dh_prev: Array, L: Array, lam, margin=2e-3) -> WeightingResult:
    """
    Joint-limit avoidance weighting matrix with hysteresis.

    Rotational entries are 1 (tube rotations are unlimited). Each
    translational entry is lam * (1 + dh) while the penalty is not decreasing
    (dh >= dh_prev, i.e. the tube is moving toward or holding at a limit) and
    lam otherwise, so motion that relieves a limit is never resisted.

    Args:
        x: (3,) x-space translations
        dh_prev: (3,) penalties computed on the previous tick
        L: (3,) tube lengths
        lam: joint-limit gain
        margin: distance kept from each end of the travel by the barrier

    Returns:
        WeightingResult with the (6, 6) matrix and the new (3,) penalties.
    """
    upper = joints.translation_upper_bounds(L)
    dh = penalty(margin, upper - margin, x)
    trans = jnp.where(dh >= dh_prev, 1.0 + dh, 1.0) * lam
    W = jnp.diag(jnp.concatenate([jnp.ones(3), trans]))
    return WeightingResult(W=W, dh=dh)


def clamp_translations(x: Array, L: Array, margin=0.5e-3) -> Tuple[Array, Array, Array]:
    """
    Clamp x-space translations into [margin, upper(i) - margin].

    Tubes are processed innermost first; each bound depends only on the
    static tube lengths, so the order does not change the result.

    Returns:
        (x_clamped, front_mask, back_mask); front means the tube hit its
        retracted end, back its extended end.
    """
    upper = joints.translation_upper_bounds(L) - margin
    out = x
    front = jnp.zeros(3, dtype=bool)
    back = jnp.zeros(3, dtype=bool)
    for i in (2, 1, 0):
        low_hit = out[i] < margin
        high_hit = jnp.logical_and(~low_hit, out[i] > upper[i])
        out = out.at[i].set(jnp.where(low_hit, margin, jnp.where(high_hit, upper[i], out[i])))
        front = front.at[i].set(low_hit)
        back = back.at[i].set(high_hit)
    return out, front, back


def space_carriages(beta: Array, L: Array, carriages: CarriageGeometry) -> Tuple[Array, Array, Array]:
    """
    Sequential carriage-spacing correction of beta-space translations.

    Walks the tubes from the outermost in. Each carriage is pushed forward if
    it would hit the carriage behind it, pulled back if it leaves no room for
    the carriages in front, pulled back if its tip would come within the
    extension margin of the next tube out, and pushed forward if the tube
    would retract behind the front plate. Each step only looks at the
    already-corrected carriage behind it.

    Returns:
        (beta_corrected, front_mask, back_mask)
    """
    n = 3
    tplus = carriages.front
    tminus = carriages.back
    ext = carriages.extension_margin
    lengths = jnp.concatenate([jnp.array([3.0 * L[0]]), L])
    b = jnp.concatenate([jnp.array([-2.0 * L[0]]), beta])
    front = jnp.zeros(n, dtype=bool)
    back = jnp.zeros(n, dtype=bool)

    for i in range(1, n + 1):
        # collides with the carriage behind: move it up
        floor = b[i - 1] + tplus[i - 1] + tminus[i]
        hit_behind = b[i] - tminus[i] < b[i - 1] + tplus[i - 1]
        b = b.at[i].set(jnp.where(hit_behind, floor, b[i]))

        # leaves no room for the carriages in front: move it back
        ahead = sum(tplus[k] + tminus[k] for k in range(i + 1, n + 1))
        ceiling = -carriages.plate_offset - ahead - tplus[i]
        crowds_front = b[i] + tplus[i] > -carriages.plate_offset - ahead
        b = b.at[i].set(jnp.where(crowds_front, ceiling, b[i]))

        # tip too close to the end of the next tube out: move it back
        reach = b[i - 1] + lengths[i - 1] - lengths[i] - ext[i]
        overextends = b[i] + lengths[i] > b[i - 1] + lengths[i - 1] - ext[i]
        b = b.at[i].set(jnp.where(overextends, reach, b[i]))

        # retracted behind the front plate: move it up
        keep = carriages.retraction_step * (n - i + 1)
        retracted = b[i] + lengths[i] - keep < 0.0
        b = b.at[i].set(jnp.where(retracted, -lengths[i] + keep, b[i]))

        front = front.at[i - 1].set(jnp.logical_or(crowds_front, overextends))
        back = back.at[i - 1].set(jnp.logical_or(hit_behind, retracted))

    return b[1:], front, back


def correct_positions(q_x: Array, L: Array, policy: LimitPolicy, margin=0.5e-3,
                      carriages: CarriageGeometry = CarriageGeometry()) -> Tuple[Array, Array, Array]:
    """
    Apply the configured position-level correction to an x-space joint vector.

    Returns:
        (q_x_corrected, front_mask, back_mask)
    """
    if policy is LimitPolicy.SIMPLE_CLAMP:
        x, front, back = clamp_translations(q_x[3:], L, margin)
        return q_x.at[3:].set(x), front, back
    if policy is LimitPolicy.CARRIAGE_SPACING:
        q_beta = joints.to_beta(q_x, L)
        beta, front, back = space_carriages(q_beta[3:], L, carriages)
        return joints.to_x(q_beta.at[3:].set(beta), L), front, back
    raise ValueError(f"Unknown limit policy: {policy}")


def limit_flags(velocity_mask=None, front_mask=None, back_mask=None) -> List[LimitFlag]:
    """Translate limiter masks into LimitFlags (outside jit)."""
    flags = []
    if velocity_mask is not None:
        for i in range(3):
            if bool(velocity_mask[i]):
                flags.append(_ROT_FLAGS[i])
            if bool(velocity_mask[i + 3]):
                flags.append(_TRANS_FLAGS[i])
    if front_mask is not None:
        flags.extend(_FRONT_FLAGS[i] for i in range(3) if bool(front_mask[i]))
    if back_mask is not None:
        flags.extend(_BACK_FLAGS[i] for i in range(3) if bool(back_mask[i]))
    return flags
