"""PyTree data records for the concentric-tube teleoperation controller.

The records here are immutable flax dataclasses. They hold JAX arrays and can
be passed through jit-compiled functions unchanged.
"""

from typing import Sequence

import jax.numpy as jnp
from jax import Array
from flax import struct

from ..errors import ConfigurationError
from ..transforms import se3


@struct.dataclass
class TubeGeometry:
    """Lengths of the three tubes, outermost first.

    Attributes:
        lengths: Array of shape (3,) with [L0, L1, L2], L0 >= L1 >= L2 > 0.
    """
    lengths: Array

    @classmethod
    def create(cls, lengths: Sequence[float]) -> "TubeGeometry":
        """Validate and build a geometry. Raises ConfigurationError."""
        values = [float(v) for v in lengths]
        if len(values) != 3:
            raise ConfigurationError(f"Expected 3 tube lengths, got {len(values)}")
        if any(v <= 0.0 for v in values):
            raise ConfigurationError(f"Tube lengths must be positive, got {values}")
        if not values[0] >= values[1] >= values[2]:
            raise ConfigurationError(
                f"Tube lengths must be ordered outer >= middle >= inner, got {values}"
            )
        return cls(lengths=jnp.asarray(values, dtype=jnp.float64))


@struct.dataclass
class KinematicsSample:
    """One solution of the forward kinematics at a joint vector.

    Attributes:
        tip_position: (3,) tip position in the robot base frame.
        tip_quaternion: (4,) tip orientation, (w, x, y, z).
        bishop_quaternion: (4,) orientation of the Bishop frame at the tip.
        base_angles: (3,) tube rotation angles at the base plate.
        jacobian: (6, 6) tip twist per beta-space joint rate.
        stability: scalar stability indicator of the solution.
        arc_lengths: (n,) arc length of each raw backbone sample, in the
            provider's order.
        backbone_positions: (n, 3) position of each raw backbone sample.
        backbone_quaternions: (n, 4) orientation of each raw backbone sample.
    """
    tip_position: Array
    tip_quaternion: Array
    bishop_quaternion: Array
    base_angles: Array
    jacobian: Array
    stability: Array
    arc_lengths: Array
    backbone_positions: Array
    backbone_quaternions: Array

    def tip_frame(self) -> Array:
        """(4, 4) tip pose in the robot base frame."""
        return se3.from_position_and_quaternion(self.tip_position, self.tip_quaternion)


@struct.dataclass
class InterpolatedBackbone:
    """Uniformly densified backbone; raw samples plus interpolated ones.

    Attributes:
        arc_lengths: (m,) arc lengths, ordered like the provider's samples.
        positions: (m, 3) positions.
        quaternions: (m, 4) orientations, (w, x, y, z).
    """
    arc_lengths: Array
    positions: Array
    quaternions: Array

    def __len__(self) -> int:
        return self.arc_lengths.shape[0]


@struct.dataclass
class ClutchContext:
    """Frames captured on the first tick after the clutch engages.

    Attributes:
        robot_frame: (4, 4) robot tip frame at clutch-in.
        device_frame: (4, 4) input device frame at clutch-in.
        device_rotation: (4, 4) pure-rotation part of device_frame.
        registration: (4, 4) rotation aligning base axes to the tip axes at
            clutch-in (transpose of the tip rotation).
    """
    robot_frame: Array
    device_frame: Array
    device_rotation: Array
    registration: Array

    @classmethod
    def capture(cls, robot_frame: Array, device_frame: Array) -> "ClutchContext":
        return cls(
            robot_frame=robot_frame,
            device_frame=device_frame,
            device_rotation=se3.from_rotation(se3.rotation(device_frame)),
            registration=se3.from_rotation(se3.rotation(robot_frame).T),
        )
