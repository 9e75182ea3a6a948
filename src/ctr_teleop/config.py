"""Controller configuration.

`ControllerConfig` is an immutable flax dataclass whose fields are all
static. Defaults are the values the endonasal teleoperation rig ran with.
`validate` rejects malformed settings before the control loop starts.
"""

import enum
import math
from typing import Tuple

from flax import struct

from .core import TubeGeometry
from .errors import ConfigurationError
from .limits import CarriageGeometry, LimitPolicy


class StalenessPolicy(enum.Enum):
    """What the controller does when the latest kinematics sample is too old."""
    HOLD = "hold"    # hold the last command until a fresh sample arrives
    FAULT = "fault"  # latch a fault until reset_fault() is called


def _static(default):
    return struct.field(pytree_node=False, default=default)


@struct.dataclass
class ControllerConfig:
    """Settings of the resolved-rates teleoperation controller.

    Attributes:
        rate: control loop frequency in Hz.
        tracking_gain: lambda of the task-space tracking weight.
        damping_gain: lambda of the actuator damping weight; must be > 0.
        joint_limit_gain: lambda of the joint-limit avoidance weight.
        damping_theta_deg: tube rotation (deg) damped as much as 1 mm of
            translation.
        max_linear_speed: tip linear speed limit (m/s) for twist scaling.
        max_angular_speed: tip angular speed limit (rad/s) for twist scaling.
        saturate_joint_rates: clamp per-joint rates after each solve.
        max_tube_rotation_speed: rad/s, used when saturate_joint_rates.
        max_tube_translation_speed: m/s, used when saturate_joint_rates.
        limit_policy: position-level joint-limit correction.
        clamp_margin: safety margin of the simple clamp (m).
        weighting_margin: margin of the joint-limit barrier (m).
        carriages: carriage stack for the carriage-spacing policy.
        motion_scale: device-to-robot translation ratio.
        device_position_scale: device position units to metres.
        rotation_scale: device-to-robot rotation ratio.
        rotation_threshold: rotations smaller than this (rad) are not scaled.
        device_registration_rpy: fixed roll-pitch-yaw (rad) from the robot
            base frame to the input device frame.
        backbone_points: interpolation points added to each backbone.
        kinematics_timeout: age (s) after which a kinematics sample is stale.
        staleness_policy: reaction to stale kinematics.
        startup_timeout: time (s) to wait for the first kinematics sample.
        max_condition_number: solves above this are low confidence.
        home: (6,) starting beta-space joint vector.
    """
    rate: float = _static(100.0)
    tracking_gain: float = _static(10.0)
    damping_gain: float = _static(50.0)
    joint_limit_gain: float = _static(100.0)
    damping_theta_deg: float = _static(2.0)
    max_linear_speed: float = _static(0.1)
    max_angular_speed: float = _static(2.5)
    saturate_joint_rates: bool = _static(False)
    max_tube_rotation_speed: float = _static(0.8)
    max_tube_translation_speed: float = _static(5e-3)
    limit_policy: LimitPolicy = _static(LimitPolicy.SIMPLE_CLAMP)
    clamp_margin: float = _static(0.5e-3)
    weighting_margin: float = _static(2e-3)
    carriages: CarriageGeometry = _static(CarriageGeometry())
    motion_scale: float = _static(0.1)
    device_position_scale: float = _static(1e-3)
    rotation_scale: float = _static(0.8)
    rotation_threshold: float = _static(1e-3)
    device_registration_rpy: Tuple[float, float, float] = _static((0.0, math.pi, 0.0))
    backbone_points: int = _static(200)
    kinematics_timeout: float = _static(0.5)
    staleness_policy: StalenessPolicy = _static(StalenessPolicy.HOLD)
    startup_timeout: float = _static(10.0)
    max_condition_number: float = _static(1e12)
    home: Tuple[float, ...] = _static((0.0, 0.0, 0.0, -160.9e-3, -127.2e-3, -86.4e-3))

    def validate(self, geometry: TubeGeometry) -> "ControllerConfig":
        """Check the configuration against a tube geometry.

        Returns self so construction can be chained. Raises
        ConfigurationError on the first problem found.
        """
        positive = {
            "rate": self.rate,
            "tracking_gain": self.tracking_gain,
            "damping_gain": self.damping_gain,
            "damping_theta_deg": self.damping_theta_deg,
            "max_linear_speed": self.max_linear_speed,
            "max_angular_speed": self.max_angular_speed,
            "max_tube_rotation_speed": self.max_tube_rotation_speed,
            "max_tube_translation_speed": self.max_tube_translation_speed,
            "clamp_margin": self.clamp_margin,
            "weighting_margin": self.weighting_margin,
            "motion_scale": self.motion_scale,
            "device_position_scale": self.device_position_scale,
            "rotation_scale": self.rotation_scale,
            "kinematics_timeout": self.kinematics_timeout,
            "startup_timeout": self.startup_timeout,
            "max_condition_number": self.max_condition_number,
        }
        for name, value in positive.items():
            if not (math.isfinite(value) and value > 0.0):
                raise ConfigurationError(f"{name} must be positive, got {value}")

        if self.joint_limit_gain < 0.0:
            raise ConfigurationError(
                f"joint_limit_gain must be non-negative, got {self.joint_limit_gain}"
            )
        if self.rotation_threshold < 0.0:
            raise ConfigurationError(
                f"rotation_threshold must be non-negative, got {self.rotation_threshold}"
            )
        if self.backbone_points < 2:
            raise ConfigurationError(f"backbone_points must be >= 2, got {self.backbone_points}")
        if not isinstance(self.limit_policy, LimitPolicy):
            raise ConfigurationError(f"Unknown limit policy: {self.limit_policy!r}")
        if not isinstance(self.staleness_policy, StalenessPolicy):
            raise ConfigurationError(f"Unknown staleness policy: {self.staleness_policy!r}")
        if len(self.device_registration_rpy) != 3:
            raise ConfigurationError("device_registration_rpy must have 3 angles")

        carriages = self.carriages
        for name in ("front", "back", "extension_margin"):
            values = getattr(carriages, name)
            if len(values) != 4 or any(v < 0.0 for v in values):
                raise ConfigurationError(f"carriages.{name} must be 4 non-negative values")

        L = [float(v) for v in geometry.lengths]
        spans = (L[0] - L[1], L[1] - L[2], L[2])
        widest = max(self.clamp_margin, self.weighting_margin)
        for i, span in enumerate(spans):
            if span <= 2.0 * widest:
                raise ConfigurationError(
                    f"Tube {i + 1} travel {span:.4g} m does not fit margins of {widest:.4g} m"
                )

        if len(self.home) != 6:
            raise ConfigurationError(f"home must have 6 joint values, got {len(self.home)}")
        beta = self.home[3:]
        x = (L[0] - L[1] + beta[0] - beta[1], L[1] - L[2] + beta[1] - beta[2], L[2] + beta[2])
        for i, (xi, span) in enumerate(zip(x, spans)):
            if not self.clamp_margin <= xi <= span - self.clamp_margin:
                raise ConfigurationError(
                    f"home places tube {i + 1} at x={xi:.4g} m, outside "
                    f"[{self.clamp_margin:.4g}, {span - self.clamp_margin:.4g}]"
                )
        return self

    def with_gains(self, tracking=None, damping=None, joint_limits=None) -> "ControllerConfig":
        """Copy with some gains replaced (not validated)."""
        return self.replace(
            tracking_gain=self.tracking_gain if tracking is None else float(tracking),
            damping_gain=self.damping_gain if damping is None else float(damping),
            joint_limit_gain=self.joint_limit_gain if joint_limits is None else float(joint_limits),
        )


DEFAULT_TUBE_LENGTHS = (222.5e-3, 163e-3, 104.4e-3)


def default_geometry() -> TubeGeometry:
    """Tube set the default home configuration was chosen for."""
    return TubeGeometry.create(DEFAULT_TUBE_LENGTHS)
