"""I/O utilities for loading controller configuration files.

This module parses the XML cannula/controller description into the
immutable configuration records used by the controller.
"""

from .config_parser import load_config, parse_config

__all__ = ["load_config", "parse_config"]
