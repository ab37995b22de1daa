#!/usr/bin/env python3
"""
Configuration for trace capture, layout shift windowing and attribution.
"""

import dataclasses
import logging
from typing import Any, Dict, List

import yaml

from .i18n import _

logger = logging.getLogger(__name__)

LOG_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG")


@dataclasses.dataclass
class TracerConfig:
    """
    Settings for one analysis run. Times are in seconds.

    Attributes:
        extra_trace_categories: Categories appended to the built-in allow-list.
        sampling_frequency: Passed to `Tracing.start` as `sampling-frequency`.
        drain_timeout: Deadline for `Tracing.tracingComplete` after `Tracing.end`.
        command_timeout: Deadline for a single CDP command reply.
        cluster_gap: A shift further than this from the previous one starts a new cluster.
        cluster_limit: Maximum span of one cluster.
        recent_input_window: Leniency after the first viewport change for `had_recent_input`.
        top_n_nodes: How many impacted nodes to describe.
        max_layout_shifts: How many of the largest shifts contribute nodes to describe.
        attribution_concurrency: Shifts attributed at the same time.
        log_level: Level name for `setup_logging`.
    """

    extra_trace_categories: List[str] = dataclasses.field(default_factory=list)
    sampling_frequency: int = 10000
    drain_timeout: float = 15.0
    command_timeout: float = 30.0
    cluster_gap: float = 1.0
    cluster_limit: float = 5.0
    recent_input_window: float = 0.5
    top_n_nodes: int = 15
    max_layout_shifts: int = 15
    attribution_concurrency: int = 4
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        for name in ("drain_timeout", "command_timeout", "cluster_gap", "cluster_limit"):
            if getattr(self, name) <= 0:
                raise ValueError(_("'{name}' must be a positive number.", name=name))
        if self.recent_input_window < 0:
            raise ValueError(_("'{name}' must not be negative.", name="recent_input_window"))
        for name in ("sampling_frequency", "top_n_nodes", "max_layout_shifts", "attribution_concurrency"):
            if getattr(self, name) < 1:
                raise ValueError(_("'{name}' must be at least 1.", name=name))
        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(_("Unknown log level: {level}", level=self.log_level))


_FIELD_TYPES: Dict[str, Any] = {
    "extra_trace_categories": list,
    "sampling_frequency": int,
    "drain_timeout": (int, float),
    "command_timeout": (int, float),
    "cluster_gap": (int, float),
    "cluster_limit": (int, float),
    "recent_input_window": (int, float),
    "top_n_nodes": int,
    "max_layout_shifts": int,
    "attribution_concurrency": int,
    "log_level": str,
}


def config_from_dict(config_data: Dict[str, Any]) -> TracerConfig:
    """Builds a TracerConfig from a mapping, rejecting unknown keys and wrong types."""
    unknown = sorted(set(config_data) - set(_FIELD_TYPES))
    if unknown:
        raise ValueError(_("Unknown config keys: {keys}", keys=", ".join(unknown)))

    for key, value in config_data.items():
        expected = _FIELD_TYPES[key]
        # bool is an int subclass; a YAML `true` is never a valid number here.
        if isinstance(value, bool) or not isinstance(value, expected):
            raise ValueError(_("'{field}' has an invalid value: {value!r}", field=key, value=value))

    categories = config_data.get("extra_trace_categories", [])
    if not all(isinstance(c, str) for c in categories):
        raise ValueError(_("'extra_trace_categories' must be a list of strings."))

    return TracerConfig(**config_data)


def load_config(path: str) -> TracerConfig:
    """
    Loads the tracer configuration from a YAML file.

    Args:
        path: The path to the YAML configuration file.

    Returns:
        A TracerConfig object. An empty file gives the defaults.

    Raises:
        FileNotFoundError: If the config file does not exist.
        ValueError: If the config file is not in the expected format.
        yaml.YAMLError: If the YAML file is malformed.
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            config_data = yaml.safe_load(f)
    except FileNotFoundError:
        logger.error(_("Config file not found at {path}", path=path))
        raise
    except yaml.YAMLError as e:
        logger.error(_("Error parsing YAML config file {path}: {e}", path=path, e=e))
        raise

    if config_data is None:
        config_data = {}
    if not isinstance(config_data, dict):
        raise ValueError(_("Config file content must be a dictionary (key-value mapping)."))

    config = config_from_dict(config_data)
    logger.info("Loaded config from '%s'.", path)
    return config
