"""Core data structures for ctr_teleop.

This module provides the immutable records exchanged between the controller,
the kinematics provider and the backbone interpolator.
"""

from .model import ClutchContext, InterpolatedBackbone, KinematicsSample, TubeGeometry

__all__ = ["ClutchContext", "InterpolatedBackbone", "KinematicsSample", "TubeGeometry"]
