"""Tests for controller configuration validation."""

import pytest

from ctr_teleop import ConfigurationError, ControllerConfig, LimitPolicy, default_geometry
from ctr_teleop.limits import CarriageGeometry


def test_defaults_validate():
    config = ControllerConfig()
    assert config.validate(default_geometry()) is config
    assert config.limit_policy is LimitPolicy.SIMPLE_CLAMP
    assert config.saturate_joint_rates is False


@pytest.mark.parametrize("field", ["rate", "damping_gain", "tracking_gain", "kinematics_timeout"])
def test_non_positive_rejected(field):
    with pytest.raises(ConfigurationError, match=field):
        ControllerConfig(**{field: 0.0}).validate(default_geometry())


def test_negative_joint_limit_gain_rejected():
    with pytest.raises(ConfigurationError):
        ControllerConfig(joint_limit_gain=-1.0).validate(default_geometry())


def test_string_policy_rejected():
    with pytest.raises(ConfigurationError, match="limit policy"):
        ControllerConfig(limit_policy="simple").validate(default_geometry())


def test_bad_carriages_rejected():
    carriages = CarriageGeometry(front=(0.0, 1e-3))
    with pytest.raises(ConfigurationError, match="carriages.front"):
        ControllerConfig(carriages=carriages).validate(default_geometry())


def test_with_gains_copies():
    """with_gains leaves the original untouched."""
    config = ControllerConfig()
    tuned = config.with_gains(tracking=1.0)
    assert tuned.tracking_gain == 1.0
    assert config.tracking_gain == 10.0
    assert tuned.damping_gain == config.damping_gain
