"""Tests for the XML configuration parser."""

import math
from pathlib import Path

import numpy as np
import pytest
from lxml import etree

from ctr_teleop import ConfigurationError, ControllerConfig, LimitPolicy, StalenessPolicy
from ctr_teleop.io import load_config, parse_config

FIXTURE = Path(__file__).parent / "fixtures" / "cannula.xml"


def _parse(xml):
    return parse_config(etree.fromstring(xml.strip()))


MINIMAL = """
<ResolvedRates>
  <Cannula>
    <Tube length="222.5e-3"/>
    <Tube length="163e-3"/>
    <Tube length="104.4e-3"/>
  </Cannula>
</ResolvedRates>
"""


def test_load_fixture():
    """Every section of the fixture reaches the config."""
    config, geometry = load_config(str(FIXTURE))

    np.testing.assert_allclose(geometry.lengths, [222.5e-3, 163e-3, 104.4e-3])
    assert config.rate == 200.0
    assert (config.tracking_gain, config.damping_gain, config.joint_limit_gain) == (20.0, 40.0, 80.0)
    assert config.damping_theta_deg == 3.0
    assert config.max_linear_speed == 0.05
    assert config.max_tube_translation_speed == 4e-3
    assert config.saturate_joint_rates is True
    assert config.limit_policy is LimitPolicy.CARRIAGE_SPACING
    assert config.carriages.extension_margin == (1e-3, 1e-3, 10e-3, 1e-3)
    assert config.carriages.front == (0.0, 10e-3, 10e-3, 10e-3)
    assert config.motion_scale == 0.2
    assert config.device_registration_rpy == (0.0, math.pi, 0.0)
    assert config.kinematics_timeout == 0.25
    assert config.staleness_policy is StalenessPolicy.FAULT
    assert config.startup_timeout == 5.0
    assert config.backbone_points == 100
    assert config.max_condition_number == 1e10
    assert config.home == (0.0, 0.5, 0.0, -160.9e-3, -127.2e-3, -86.4e-3)


def test_minimal_uses_defaults():
    """Only the tubes are required; everything else keeps its default."""
    config, _ = _parse(MINIMAL)
    assert config == ControllerConfig()


def test_wrong_root():
    with pytest.raises(ConfigurationError, match="ResolvedRates"):
        _parse("<Robot/>")


def test_missing_tubes():
    with pytest.raises(ConfigurationError, match="3 <Tube>"):
        _parse("<ResolvedRates><Cannula><Tube length='0.2'/></Cannula></ResolvedRates>")


def test_missing_cannula():
    with pytest.raises(ConfigurationError):
        _parse("<ResolvedRates/>")


def test_unordered_tubes():
    xml = MINIMAL.replace("222.5e-3", "50e-3")
    with pytest.raises(ConfigurationError):
        _parse(xml)


def test_unknown_policy():
    xml = MINIMAL.replace("</Cannula>", "</Cannula><JointLimits policy='magnetic'/>")
    with pytest.raises(ConfigurationError, match="policy"):
        _parse(xml)


def test_non_numeric_value():
    xml = MINIMAL.replace("</Cannula>", "</Cannula><Gains damping='lots'/>")
    with pytest.raises(ConfigurationError, match="not a number"):
        _parse(xml)


def test_zero_damping_rejected():
    xml = MINIMAL.replace("</Cannula>", "</Cannula><Gains damping='0'/>")
    with pytest.raises(ConfigurationError, match="damping_gain"):
        _parse(xml)


def test_home_outside_travel_rejected():
    xml = MINIMAL.replace("</Cannula>", "</Cannula><Home translation='0 0 0'/>")
    with pytest.raises(ConfigurationError, match="home"):
        _parse(xml)


def test_wrong_carriage_count():
    xml = MINIMAL.replace("</Cannula>", "</Cannula><Carriages><Carriage/><Carriage/></Carriages>")
    with pytest.raises(ConfigurationError, match="Carriage"):
        _parse(xml)


def test_malformed_file(tmp_path):
    path = tmp_path / "broken.xml"
    path.write_text("<ResolvedRates><Cannula>")
    with pytest.raises(ConfigurationError, match="Invalid configuration XML"):
        load_config(str(path))
