"""Clutched teleoperation of a three-tube concentric-tube robot.

`TeleopController` owns every piece of mutable controller state: the joint
vector, the joint-limit hysteresis, the clutch context and the latest inputs.
Inputs are delivered with latest-value semantics through the `update_*`
methods, and `tick` runs one control cycle. Tick-level problems never raise;
they are reported through `TickResult.status` while the last command is held.
"""

import collections
import enum
import logging
from typing import Optional, Sequence, Tuple

import jax.numpy as jnp
from jax import Array
from flax import struct

from . import limits, solver, velocity
from .backbone import interpolate_sample
from .config import ControllerConfig, StalenessPolicy
from .core import ClutchContext, InterpolatedBackbone, KinematicsSample, TubeGeometry
from .transforms import se3, so3

logger = logging.getLogger(__name__)


class ClutchState(enum.Enum):
    DISENGAGED = "disengaged"
    ENGAGED = "engaged"


class TickStatus(enum.Enum):
    """Outcome of one control tick."""
    COMPUTED = "computed"                    # a new command was computed
    HELD_DISENGAGED = "held_disengaged"      # clutch released, holding
    NO_DEVICE = "no_device"                  # no input device pose yet
    NO_KINEMATICS = "no_kinematics"          # no kinematics sample yet
    STALE_KINEMATICS = "stale_kinematics"    # latest sample too old
    KINEMATICS_FAILED = "kinematics_failed"  # provider did not converge
    LOW_CONFIDENCE = "low_confidence"        # ill-conditioned solve discarded
    FAULTED = "faulted"                      # latched fault, needs reset


@struct.dataclass
class TickResult:
    """Joint command and health of one tick.

    Attributes:
        q: (6,) beta-space joint command (held value unless computed).
        twist: (6,) scaled tip-frame twist fed to the solver, or None.
        status: what happened this tick.
        limit_flags: saturation events raised this tick.
    """
    q: Array
    twist: Optional[Array] = None
    status: TickStatus = struct.field(pytree_node=False, default=TickStatus.COMPUTED)
    limit_flags: Tuple[limits.LimitFlag, ...] = struct.field(pytree_node=False, default=())

    @property
    def computed(self) -> bool:
        """Health signal: True when the command was computed this tick."""
        return self.status is TickStatus.COMPUTED


class TeleopController:
    """Resolved-rates teleoperation controller for one robot.

    Args:
        config: controller settings, validated here.
        geometry: tube lengths.

    Raises:
        ConfigurationError: if the configuration is rejected.
    """

    def __init__(self, config: ControllerConfig, geometry: TubeGeometry):
        self.config = config.validate(geometry)
        self.geometry = geometry
        self.device_registration = se3.from_rotation(so3.from_rpy(*config.device_registration_rpy))

        self.q = jnp.asarray(config.home, dtype=jnp.float64)
        self.dh_prev = jnp.zeros(3)
        self.clutch: Optional[ClutchContext] = None
        self.limit_counts = collections.Counter()
        self.backbone: Optional[InterpolatedBackbone] = None

        self._device_frame: Optional[Array] = None
        self._button = False
        self._just_clutched = False
        self._sample: Optional[KinematicsSample] = None
        self._sample_stamp = 0.0
        self._kinematics_failed = False
        self._faulted = False

    # Inputs

    @property
    def clutch_state(self) -> ClutchState:
        return ClutchState.ENGAGED if self._button else ClutchState.DISENGAGED

    @property
    def sample(self) -> Optional[KinematicsSample]:
        return self._sample

    @property
    def faulted(self) -> bool:
        return self._faulted

    def update_device_pose(self, position: Sequence[float], quaternion: Sequence[float]) -> None:
        """Latest input device pose; quaternion is (w, x, y, z)."""
        self._device_frame = se3.from_position_and_quaternion(
            jnp.asarray(position, dtype=jnp.float64), jnp.asarray(quaternion, dtype=jnp.float64)
        )

    def update_button(self, pressed: bool) -> None:
        """Latest clutch button state."""
        pressed = bool(pressed)
        if pressed and not self._button:
            self._just_clutched = True
            logger.info("Clutch engaged")
        elif not pressed and self._button:
            self.clutch = None
            logger.info("Clutch disengaged, holding joint command")
        self._button = pressed

    def update_kinematics(self, sample: KinematicsSample, stamp: float) -> None:
        """Replace the current kinematics sample and resample its backbone."""
        self._sample = sample
        self._sample_stamp = float(stamp)
        self._kinematics_failed = False
        try:
            self.backbone = interpolate_sample(sample, self.config.backbone_points)
        except ValueError as e:
            logger.warning(f"Backbone interpolation skipped: {e}")
            self.backbone = None

    def mark_kinematics_failed(self) -> None:
        """Record that the provider failed for the last commanded joint vector."""
        self._kinematics_failed = True

    def reset_fault(self) -> None:
        """Clear a latched fault. The sample held while faulted is dropped, so
        motion resumes only once a fresh one arrives."""
        if self._faulted:
            logger.info("Controller fault cleared, waiting for fresh kinematics")
            self._sample = None
        self._faulted = False

    def set_gains(self, tracking=None, damping=None, joint_limits=None) -> None:
        """Retune the solver gains. Raises ConfigurationError."""
        self.config = self.config.with_gains(tracking, damping, joint_limits).validate(self.geometry)
        logger.info(
            f"Gains set: tracking={self.config.tracking_gain}, damping={self.config.damping_gain}, "
            f"joint_limits={self.config.joint_limit_gain}"
        )

    # Control

    def tick(self, now: float) -> TickResult:
        """Run one control cycle at time `now` (seconds, same clock as stamps)."""
        if self._faulted:
            return self._hold(TickStatus.FAULTED)
        if self._sample is None:
            return self._hold(TickStatus.NO_KINEMATICS)
        if self._kinematics_failed:
            return self._hold(TickStatus.KINEMATICS_FAILED)
        # sample age only matters while engaged
        if not self._button:
            return self._hold(TickStatus.HELD_DISENGAGED)

        age = now - self._sample_stamp
        if age > self.config.kinematics_timeout:
            if self.config.staleness_policy is StalenessPolicy.FAULT:
                self._faulted = True
                logger.error(f"Kinematics sample is {age:.3f}s old, faulting")
                return self._hold(TickStatus.FAULTED)
            logger.warning(f"Kinematics sample is {age:.3f}s old, holding")
            return self._hold(TickStatus.STALE_KINEMATICS)

        if self._device_frame is None:
            return self._hold(TickStatus.NO_DEVICE)

        tip_frame = self._sample.tip_frame()
        if self._just_clutched or self.clutch is None:
            self.clutch = ClutchContext.capture(tip_frame, self._device_frame)
            self._just_clutched = False
            logger.info(f"Clutch-in tip position {tip_frame[:3, 3]}")

        twist = self.desired_twist(self.clutch, tip_frame, self._device_frame)
        twist, scaled = velocity.scale_twist(
            twist, self.config.rate, self.config.max_linear_speed, self.config.max_angular_speed
        )
        logger.debug(f"Desired twist {twist} (scaled: {scaled})")

        result = solver.step(
            self.q, self._sample.jacobian, twist, self.dh_prev, self.geometry, self.config
        )
        if not solver.is_well_conditioned(result.solve, self.config.max_condition_number):
            logger.warning(
                f"Low-confidence solve discarded: cond={float(result.solve.condition_number):.3g}, "
                f"residual={float(result.solve.residual):.3g}"
            )
            return self._hold(TickStatus.LOW_CONFIDENCE, twist)

        flags = tuple(limits.limit_flags(result.velocity_mask, result.front_mask, result.back_mask))
        for flag in flags:
            self.limit_counts[flag] += 1
            logger.warning(f"Joint limit saturated: {flag.value} (x{self.limit_counts[flag]})")

        self.q = result.q
        self.dh_prev = result.dh
        return TickResult(q=self.q, twist=twist, status=TickStatus.COMPUTED, limit_flags=flags)

    def desired_twist(self, clutch: ClutchContext, tip_frame: Array, device_frame: Array) -> Array:
        """
        Tip-frame twist increment commanded by the device since clutch-in.

        The device motion since clutch-in is expressed in the clutch-in device
        axes, carried into robot base axes through the fixed device
        registration, scaled, and applied at the clutch-in tip frame through
        the tip registration. The result is the delta from the current tip
        frame to that target, read as a twist.
        """
        Rc = clutch.device_rotation
        delta = Rc @ se3.inverse(clutch.device_frame) @ device_frame @ se3.inverse(Rc)

        reg = self.device_registration
        delta = se3.inverse(reg) @ delta @ reg

        scale = self.config.device_position_scale * self.config.motion_scale
        delta = se3.with_position(delta, se3.position(delta) * scale)
        delta = se3.with_rotation(delta, self._scale_rotation(se3.rotation(delta)))

        target = (se3.inverse(tip_frame) @ clutch.robot_frame @ clutch.registration
                  @ delta @ se3.inverse(clutch.registration))
        return se3.delta_to_twist(target)

    def _scale_rotation(self, R: Array) -> Array:
        w = so3.log(R)
        angle = jnp.linalg.norm(w)
        # below the threshold the axis is numerically meaningless
        return jnp.where(angle > self.config.rotation_threshold,
                         so3.exp(self.config.rotation_scale * w), R)

    def _hold(self, status: TickStatus, twist: Optional[Array] = None) -> TickResult:
        return TickResult(q=self.q, twist=twist, status=status)
