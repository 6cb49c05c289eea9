# ============================================================================
# CONFIGURATION LOADER
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# STATUS: Core - YAML configuration surface
# PURPOSE: Load per-section overrides and recovery policies from YAML
# CREATED: 16 OCT 2026
# ============================================================================
"""
Configuration Loader

Reads an orchestration config file and layers it over the environment
defaults. Every section is optional:

    checkpoints:
      max_checkpoints: 5
    resources:
      memory_limit_bytes: 1073741824
      warning_threshold: 0.85
    chunking:
      min_size: 256
      overlap: 64
    scheduler:
      max_parallel_paths: 4
      timeout_multiplier: 3.0
    branches:
      weights: {quality: 0.4, functionality: 0.4, performance: 0.1, maintainability: 0.1}
    recovery_policies:
      generation_failure:
        max_retries: 3
        backoff: {type: exponential, initial_seconds: 1, factor: 2, max_seconds: 30}
        fallback: {type: simplify}
"""

import dataclasses
import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml
from pydantic import BaseModel, Field, ValidationError

from core.config.defaults import OrchestratorDefaults, get_defaults
from core.models.recovery import RecoveryPolicy

logger = logging.getLogger(__name__)


class OrchestrationConfig(BaseModel):
    """Validated contents of an orchestration config file."""
    checkpoints: Dict[str, Any] = Field(default_factory=dict)
    resources: Dict[str, Any] = Field(default_factory=dict)
    chunking: Dict[str, Any] = Field(default_factory=dict)
    scheduler: Dict[str, Any] = Field(default_factory=dict)
    branches: Dict[str, Any] = Field(default_factory=dict)
    recovery_policies: Dict[str, RecoveryPolicy] = Field(default_factory=dict)

    def to_defaults(self, base: Optional[OrchestratorDefaults] = None) -> OrchestratorDefaults:
        """
        Apply section overrides on top of the given (or process) defaults.

        Raises:
            ValueError if a section names an unknown setting
        """
        base = base or get_defaults()
        try:
            return OrchestratorDefaults(
                checkpoints=dataclasses.replace(base.checkpoints, **self.checkpoints),
                resources=dataclasses.replace(base.resources, **self.resources),
                chunking=dataclasses.replace(base.chunking, **self.chunking),
                scheduler=dataclasses.replace(base.scheduler, **self.scheduler),
                branches=dataclasses.replace(base.branches, **self.branches),
            )
        except TypeError as e:
            raise ValueError(f"Unknown configuration setting: {e}") from e


def load_orchestration_config(path: Union[str, Path]) -> OrchestrationConfig:
    """
    Load an orchestration config file.

    Args:
        path: Path to YAML file

    Returns:
        OrchestrationConfig instance

    Raises:
        ValueError if the file cannot be parsed or fails validation
    """
    path = Path(path)
    try:
        with open(path) as f:
            data = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ValueError(f"Cannot read orchestration config {path}: {e}") from e

    if not isinstance(data, dict):
        raise ValueError(f"Invalid orchestration config in {path}: expected a mapping")

    try:
        config = OrchestrationConfig(**data)
    except ValidationError as e:
        raise ValueError(f"Invalid orchestration config in {path}: {e}") from e

    logger.info(
        f"Loaded orchestration config: {path} "
        f"(policies={len(config.recovery_policies)})"
    )
    return config


__all__ = ["OrchestrationConfig", "load_orchestration_config"]
