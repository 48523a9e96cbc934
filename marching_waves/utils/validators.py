"""Config schemas and YAML config loading.

Provides centralized validation using pydantic:
    - JobOptions: per-job tuning knobs (interval, thresholds, edge guidance)
    - SchedulerConfig: pool sizing, idle reclamation, memory pressure
    - LoggingConfig: arguments for logging_config.setup_logging
    - EngineConfigV1: top-level ``marching_waves.v1`` YAML document

Job options arrive from callers as plain dicts, often with the camelCase
keys of the browser front end (``edgeGuidance``, ``maxSegments``); both
spellings validate to the same model.

Units:
    - Geometry: pixels (continuous, x = column, y = row)
    - Intensity: [0.0, 1.0] luminance

Usage:
    from marching_waves.utils import validators

    engine_cfg = validators.load_engine_config("configs/engine.yaml")
    opts = validators.JobOptions.model_validate({"interval": 6, "edgeGuidance": True})
"""

import os
from pathlib import Path
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ============================================================================
# JOB OPTIONS
# ============================================================================

class JobOptions(BaseModel):
    """Tuning options shared by all job kinds.

    Unknown keys are ignored so front-end option bags can be passed through
    untouched. The ``on_progress`` callback is not part of the model; the
    scheduler strips it before validation.
    """
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra='ignore')

    interval: float = Field(8.0, gt=0.0, le=1000.0, description="Contour interval / line spacing (px)")
    max_segments: Optional[int] = Field(None, ge=0, description="Cap on emitted geometry, None or 0 for no cap")
    threshold: Optional[float] = Field(None, ge=0.0, le=1.0, description="Intensity threshold override")

    # Contour extraction
    edge_guidance: bool = Field(False, description="Snap contour endpoints toward image edges")
    edge_sensitivity: float = Field(0.5, ge=0.0, le=1.0, description="Blend factor for edge snapping")
    detail_level: float = Field(0.5, ge=0.0, le=1.0, description="Contour density (0 sparse, 1 dense)")
    contour_smoothness: float = Field(0.0, ge=0.0, le=1.0, description="Downstream smoothing hint")

    # Streamline tracing
    step_size: float = Field(2.0, gt=0.0, le=50.0, description="Euler step length (px)")
    max_steps: int = Field(500, ge=1, le=100_000, description="Max steps per direction")
    min_length: float = Field(10.0, ge=0.0, description="Shortest streamline kept (px)")

    # Execution
    show_progress: bool = Field(True, description="Emit progress events")
    batch_size: int = Field(1000, ge=1, le=1_000_000, description="Solver cells between checkpoints")
    seed: Optional[int] = Field(None, ge=0, description="RNG seed for stochastic jobs")

    @property
    def segment_cap(self) -> Optional[int]:
        """``max_segments`` with 0 normalised to "no cap"."""
        return self.max_segments or None


# ============================================================================
# SCHEDULER
# ============================================================================

class SchedulerConfig(BaseModel):
    """Execution-unit pool sizing and reclamation policy."""
    max_units: Optional[int] = Field(None, ge=1, le=256, description="Pool cap, None for host CPU count")
    idle_timeout_s: float = Field(60.0, gt=0.0, description="Idle time before a unit may be reclaimed")
    min_idle_units: int = Field(1, ge=0, le=64, description="Warm units always kept")
    memory_pressure_ratio: float = Field(0.8, gt=0.0, le=1.0, description="Usage ratio that triggers reclaim")
    memory_pressure_enabled: bool = Field(True, description="Probe memory on submit and completion")

    def resolved_max_units(self) -> int:
        """Pool cap with the host parallelism hint applied (minimum 1)."""
        if self.max_units is not None:
            return self.max_units
        return max(1, os.cpu_count() or 1)


# ============================================================================
# LOGGING
# ============================================================================

class LoggingConfig(BaseModel):
    """Arguments forwarded to ``logging_config.setup_logging``."""
    log_level: str = Field("INFO", description="Root logger level")
    log_file: Optional[str] = Field(None, description="Log file path, None for console only")
    json_format: bool = Field(False, alias="json", description="JSON lines in the log file")
    color: bool = Field(True, description="ANSI colors on the console")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator('log_level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"Unknown log level '{v}'")
        return v

    def setup_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for ``setup_logging``."""
        return {
            'log_level': self.log_level,
            'log_file': self.log_file,
            'json': self.json_format,
            'color': self.color,
        }


# ============================================================================
# ENGINE CONFIG V1
# ============================================================================

class EngineConfigV1(BaseModel):
    """Engine configuration document (``marching_waves.v1`` schema)."""
    schema_version: str = Field("marching_waves.v1", alias="schema", description="Schema version")
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    defaults: JobOptions = Field(default_factory=JobOptions)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = ConfigDict(populate_by_name=True)

    @field_validator('schema_version')
    @classmethod
    def validate_schema(cls, v: str) -> str:
        if v != "marching_waves.v1":
            raise ValueError(f"Expected schema 'marching_waves.v1', got '{v}'")
        return v


def load_engine_config(path: Union[str, Path]) -> EngineConfigV1:
    """Load and validate engine config from YAML.

    Parameters
    ----------
    path : Union[str, Path]
        Path to engine YAML file

    Returns
    -------
    EngineConfigV1
        Validated engine configuration

    Raises
    ------
    FileNotFoundError
        If path doesn't exist
    ValueError
        If validation fails (with the offending path in the message)
    """
    from . import fs

    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Engine config not found: {path}")

    data = fs.load_yaml(path)
    try:
        return EngineConfigV1.model_validate(data)
    except Exception as e:
        raise ValueError(f"Engine config validation failed at {path}: {e}") from e


def merge_options(defaults: JobOptions, overrides: Optional[Dict[str, Any]]) -> JobOptions:
    """Overlay a caller option dict (either key spelling) on defaults."""
    if not overrides:
        return defaults
    base = defaults.model_dump()
    parsed = JobOptions.model_validate(overrides)
    base.update(parsed.model_dump(exclude_unset=True))
    return JobOptions.model_validate(base)
