"""
JAX transforms for the teleoperation controller.

This module provides pure, JIT-compilable implementations of:
- SO(3) rotations (so3 module)
- SE(3) homogeneous transforms (se3 module)
- quaternion interpolation (quaternion module)
"""

from . import so3
from . import se3
from . import quaternion

__all__ = [
    "so3",
    "se3",
    "quaternion",
]
