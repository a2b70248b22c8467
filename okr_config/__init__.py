"""
okr_config -- single public entrypoint for lifecycle configuration.

Responsibility:
    Provides the ONLY way to obtain the lifecycle policy at runtime through
    ``get_active_config()``.  No other component reads policy files or
    environment variables for lifecycle behavior.

Architecture position:
    Configuration -- YAML-driven policy.  This package sits above
    ``okr_kernel`` / ``okr_engines`` and below ``okr_services``.  The
    kernel and engines MUST NEVER import from ``okr_config``; bridges in
    this package translate a policy into their inputs.

Invariants enforced:
    - Single entrypoint: all runtime policy flows through
      ``get_active_config()``.
    - Deterministic: the same file always yields the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the policy file does not exist.
    - ``ValueError`` -- unknown keys or out-of-range values.

Audit relevance:
    Every successful ``get_active_config()`` call emits an
    ``okr_config_loaded`` log entry with the policy name, version, source
    path and checksum, tying each close back to the policy that governed it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from okr_config.loader import load_policy
from okr_config.schema import GradeThresholds, LifecyclePolicy

_logger = logging.getLogger("okr_kernel.config")

# Default policy shipped with the package
_DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> LifecyclePolicy:
    """The ONLY public configuration entrypoint.

    Args:
        config_path: Override path to a policy YAML file.  Defaults to
            okr_config/sets/default.yaml.

    Returns:
        Frozen LifecyclePolicy with its checksum populated.

    Raises:
        FileNotFoundError: If the policy file does not exist.
        ValueError: If the policy fails validation.
    """
    path = Path(config_path) if config_path is not None else _DEFAULT_CONFIG_PATH
    policy = load_policy(path)

    _logger.info(
        "okr_config_loaded",
        extra={
            "policy_name": policy.name,
            "policy_version": policy.version,
            "source": str(path),
            "checksum": policy.checksum,
            "operational_unit": policy.operational_unit,
        },
    )
    return policy


__all__ = [
    "GradeThresholds",
    "LifecyclePolicy",
    "get_active_config",
]
