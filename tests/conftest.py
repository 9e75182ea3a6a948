"""Pytest configuration and shared fixtures."""

import jax.numpy as jnp
import pytest

from ctr_teleop import ControllerConfig, KinematicsSample, TubeGeometry, default_geometry


def _straight_sample(tip_position=(0.0, 0.0, 0.1), jacobian=None, n=12):
    """Synthetic kinematics: straight backbone along z, identity orientations."""
    tip_position = jnp.asarray(tip_position, dtype=jnp.float64)
    # provider convention: arc lengths run from the tip back to the base
    s = jnp.linspace(0.1, 0.0, n)
    positions = jnp.stack([jnp.zeros(n), jnp.zeros(n), s], axis=-1)
    quaternions = jnp.tile(jnp.array([1.0, 0.0, 0.0, 0.0]), (n, 1))
    return KinematicsSample(
        tip_position=tip_position,
        tip_quaternion=jnp.array([1.0, 0.0, 0.0, 0.0]),
        bishop_quaternion=jnp.array([1.0, 0.0, 0.0, 0.0]),
        base_angles=jnp.zeros(3),
        jacobian=jnp.eye(6) if jacobian is None else jnp.asarray(jacobian),
        stability=jnp.asarray(1.0),
        arc_lengths=s,
        backbone_positions=positions,
        backbone_quaternions=quaternions,
    )


@pytest.fixture
def make_sample():
    """Factory for synthetic kinematics samples."""
    return _straight_sample


@pytest.fixture
def geometry() -> TubeGeometry:
    return default_geometry()


@pytest.fixture
def config() -> ControllerConfig:
    return ControllerConfig()
