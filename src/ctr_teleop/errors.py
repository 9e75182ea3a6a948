"""Exceptions raised by ctr_teleop.

Only startup and collaborator failures raise. Problems found while ticking
are reported through `TickStatus` instead.
"""


class CTRTeleopError(Exception):
    """Base class for all ctr_teleop errors."""


class ConfigurationError(CTRTeleopError, ValueError):
    """Raised when a configuration or tube geometry is rejected at startup."""


class KinematicsError(CTRTeleopError):
    """Raised by a kinematics provider that could not solve for a joint vector."""


class KinematicsTimeoutError(KinematicsError):
    """Raised when no kinematics sample arrived within the startup timeout."""
