"""
CTR Teleop: resolved-rates teleoperation for concentric-tube continuum robots.

This library turns incremental input-device motion into joint-limit-aware,
singularity-robust tube rotation and translation commands, using pure,
JIT-compilable JAX numerics.
"""

import jax
jax.config.update("jax_enable_x64", True)

# Import core modules
from . import transforms
from . import core
from . import io
from .config import ControllerConfig, StalenessPolicy, default_geometry
from .core import TubeGeometry, KinematicsSample, InterpolatedBackbone
from .errors import ConfigurationError, KinematicsError, KinematicsTimeoutError
from .limits import LimitFlag, LimitPolicy
from .loop import ControlLoop, DeviceState
from .teleop import ClutchState, TeleopController, TickResult, TickStatus

__version__ = "0.1.0"
__all__ = [
    "transforms",
    "core",
    "io",
    "ClutchState",
    "ConfigurationError",
    "ControlLoop",
    "ControllerConfig",
    "DeviceState",
    "InterpolatedBackbone",
    "KinematicsError",
    "KinematicsSample",
    "KinematicsTimeoutError",
    "LimitFlag",
    "LimitPolicy",
    "StalenessPolicy",
    "TeleopController",
    "TickResult",
    "TickStatus",
    "TubeGeometry",
    "default_geometry",
]
