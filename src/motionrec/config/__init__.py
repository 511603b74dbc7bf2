"""Configuration objects and helpers for the motion recorder.

:mod:`runtime` loads an optional YAML file (``MOTIONREC_CONFIG`` or an
explicit path) into the typed :class:`PipelineConfig` used by the pipeline,
the Qt worker and the command-line tools.
"""

from .runtime import PipelineConfig, config_from_mapping, load_config

__all__ = ["PipelineConfig", "config_from_mapping", "load_config"]
