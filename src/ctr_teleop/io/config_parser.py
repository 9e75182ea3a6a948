"""XML parser for controller and cannula configuration files.

A configuration file looks like::

    <ResolvedRates rate="100">
      <Cannula>
        <Tube length="222.5e-3"/>
        <Tube length="163e-3"/>
        <Tube length="104.4e-3"/>
      </Cannula>
      <Gains tracking="10" damping="50" joint_limits="100" damping_theta_deg="2"/>
      <Speeds linear="0.1" angular="2.5" tube_rotation="0.8"
              tube_translation="5e-3" saturate_joint_rates="false"/>
      <JointLimits policy="simple" clamp_margin="0.5e-3" weighting_margin="2e-3"/>
      <Carriages plate_offset="25e-3" retraction_step="1e-3">
        <Carriage front="0" back="0" extension_margin="1e-3"/>
        ... one per tube, outermost first ...
      </Carriages>
      <Device motion_scale="0.1" position_scale="1e-3" rotation_scale="0.8"
              rotation_threshold="1e-3" rpy="0 3.14159265 0"/>
      <Kinematics timeout="0.5" staleness="hold" startup_timeout="10"
                  backbone_points="200"/>
      <Solver max_condition_number="1e12"/>
      <Home rotation="0 0 0" translation="-160.9e-3 -127.2e-3 -86.4e-3"/>
    </ResolvedRates>

Every element and attribute is optional except the three tubes; missing
values keep the ControllerConfig defaults.
"""

import logging
from typing import Dict, List, Optional, Tuple

from lxml import etree

from ctr_teleop.config import ControllerConfig, StalenessPolicy
from ctr_teleop.core import TubeGeometry
from ctr_teleop.errors import ConfigurationError
from ctr_teleop.limits import CarriageGeometry, LimitPolicy

logger = logging.getLogger(__name__)

# element -> {attribute: ControllerConfig field}
_FLOAT_FIELDS: Dict[str, Dict[str, str]] = {
    'Gains': {
        'tracking': 'tracking_gain',
        'damping': 'damping_gain',
        'joint_limits': 'joint_limit_gain',
        'damping_theta_deg': 'damping_theta_deg',
    },
    'Speeds': {
        'linear': 'max_linear_speed',
        'angular': 'max_angular_speed',
        'tube_rotation': 'max_tube_rotation_speed',
        'tube_translation': 'max_tube_translation_speed',
    },
    'JointLimits': {
        'clamp_margin': 'clamp_margin',
        'weighting_margin': 'weighting_margin',
    },
    'Device': {
        'motion_scale': 'motion_scale',
        'position_scale': 'device_position_scale',
        'rotation_scale': 'rotation_scale',
        'rotation_threshold': 'rotation_threshold',
    },
    'Kinematics': {
        'timeout': 'kinematics_timeout',
        'startup_timeout': 'startup_timeout',
    },
    'Solver': {
        'max_condition_number': 'max_condition_number',
    },
}


def load_config(config_path: str) -> Tuple[ControllerConfig, TubeGeometry]:
    """Load a configuration file into a validated config and tube geometry.

    Args:
        config_path: Path to the XML file.

    Returns:
        (ControllerConfig, TubeGeometry)

    Raises:
        ConfigurationError: if the file is malformed or the values are rejected.
    """
    try:
        tree = etree.parse(config_path)
    except etree.XMLSyntaxError as e:
        raise ConfigurationError(f"Invalid configuration XML in {config_path}: {e}") from e
    return parse_config(tree.getroot())


def parse_config(root) -> Tuple[ControllerConfig, TubeGeometry]:
    """Build (ControllerConfig, TubeGeometry) from a parsed <ResolvedRates> element."""
    if root.tag != 'ResolvedRates':
        raise ConfigurationError(f"Expected <ResolvedRates> root element, found <{root.tag}>")

    geometry = TubeGeometry.create(_tube_lengths(root))
    overrides = {}

    rate = root.get('rate')
    if rate is not None:
        overrides['rate'] = _float(rate, 'ResolvedRates', 'rate')

    for tag, fields in _FLOAT_FIELDS.items():
        elem = root.find(tag)
        if elem is None:
            continue
        for attr, field_name in fields.items():
            value = elem.get(attr)
            if value is not None:
                overrides[field_name] = _float(value, tag, attr)

    speeds = root.find('Speeds')
    if speeds is not None and speeds.get('saturate_joint_rates') is not None:
        overrides['saturate_joint_rates'] = _bool(speeds.get('saturate_joint_rates'), 'Speeds')

    limits_elem = root.find('JointLimits')
    if limits_elem is not None and limits_elem.get('policy') is not None:
        overrides['limit_policy'] = _enum(LimitPolicy, limits_elem.get('policy'), 'policy')

    kinematics = root.find('Kinematics')
    if kinematics is not None:
        if kinematics.get('staleness') is not None:
            overrides['staleness_policy'] = _enum(
                StalenessPolicy, kinematics.get('staleness'), 'staleness'
            )
        if kinematics.get('backbone_points') is not None:
            overrides['backbone_points'] = int(
                _float(kinematics.get('backbone_points'), 'Kinematics', 'backbone_points')
            )

    device = root.find('Device')
    if device is not None and device.get('rpy') is not None:
        overrides['device_registration_rpy'] = tuple(_floats(device.get('rpy'), 3, 'Device', 'rpy'))

    carriages = _carriages(root.find('Carriages'))
    if carriages is not None:
        overrides['carriages'] = carriages

    home = root.find('Home')
    if home is not None:
        rotation = _floats(home.get('rotation', '0 0 0'), 3, 'Home', 'rotation')
        translation = home.get('translation')
        if translation is None:
            raise ConfigurationError("<Home> requires a 'translation' attribute")
        overrides['home'] = tuple(rotation + _floats(translation, 3, 'Home', 'translation'))

    config = ControllerConfig(**overrides).validate(geometry)
    logger.info(f"Loaded configuration: tubes {[float(v) for v in geometry.lengths]}, "
                f"policy {config.limit_policy.value}, rate {config.rate} Hz")
    return config, geometry


def _tube_lengths(root) -> List[float]:
    cannula = root.find('Cannula')
    if cannula is None:
        raise ConfigurationError("Missing <Cannula> element")
    tubes = cannula.findall('Tube')
    if len(tubes) != 3:
        raise ConfigurationError(f"Expected 3 <Tube> elements, found {len(tubes)}")
    lengths = []
    for tube in tubes:
        length = tube.get('length')
        if length is None:
            raise ConfigurationError("<Tube> requires a 'length' attribute")
        lengths.append(_float(length, 'Tube', 'length'))
    return lengths


def _carriages(elem) -> Optional[CarriageGeometry]:
    if elem is None:
        return None
    defaults = CarriageGeometry()
    stages = elem.findall('Carriage')
    if stages and len(stages) != 4:
        raise ConfigurationError(
            f"Expected 4 <Carriage> elements (base stage + 3 tubes), found {len(stages)}"
        )
    front, back, ext = defaults.front, defaults.back, defaults.extension_margin
    if stages:
        front = tuple(_float(s.get('front', '0'), 'Carriage', 'front') for s in stages)
        back = tuple(_float(s.get('back', '0'), 'Carriage', 'back') for s in stages)
        ext = tuple(_float(s.get('extension_margin', '0'), 'Carriage', 'extension_margin')
                    for s in stages)
    return CarriageGeometry(
        front=front,
        back=back,
        extension_margin=ext,
        plate_offset=_float(elem.get('plate_offset', str(defaults.plate_offset)),
                            'Carriages', 'plate_offset'),
        retraction_step=_float(elem.get('retraction_step', str(defaults.retraction_step)),
                               'Carriages', 'retraction_step'),
    )


def _float(value: str, tag: str, attr: str) -> float:
    try:
        return float(value)
    except ValueError:
        raise ConfigurationError(f"<{tag} {attr}='{value}'> is not a number")


def _floats(value: str, count: int, tag: str, attr: str) -> List[float]:
    parts = value.split()
    if len(parts) != count:
        raise ConfigurationError(f"<{tag} {attr}> expects {count} numbers, got '{value}'")
    return [_float(p, tag, attr) for p in parts]


def _bool(value: str, tag: str) -> bool:
    lowered = value.strip().lower()
    if lowered in ('1', 'true', 'yes'):
        return True
    if lowered in ('0', 'false', 'no'):
        return False
    raise ConfigurationError(f"<{tag}> has non-boolean value '{value}'")


def _enum(enum_cls, value: str, attr: str):
    try:
        return enum_cls(value.strip().lower())
    except ValueError:
        choices = ', '.join(m.value for m in enum_cls)
        raise ConfigurationError(f"Unknown {attr} '{value}', expected one of: {choices}")
