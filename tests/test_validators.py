"""Test config schemas and YAML loading.

Tests for marching_waves.utils.validators:
    - JobOptions accepts snake_case and camelCase keys
    - Bounds violations raise ValidationError
    - merge_options only overrides keys the caller set
    - engine.yaml loads, and a dumped config loads back identical
    - Wrong schema tag and missing files are reported

Test cases:
    - test_job_options_defaults()
    - test_job_options_camel_case()
    - test_job_options_bounds()
    - test_segment_cap()
    - test_merge_options()
    - test_scheduler_max_units()
    - test_logging_config_level()
    - test_load_shipped_config()
    - test_config_roundtrip()
    - test_wrong_schema()
    - test_missing_config()

Run:
    pytest tests/test_validators.py -v
"""

import os
from pathlib import Path

import pytest
from pydantic import ValidationError

from marching_waves.utils import fs, validators

CONFIG_PATH = Path(__file__).parent.parent / "configs" / "engine.yaml"


def test_job_options_defaults():
    opts = validators.JobOptions()
    assert opts.interval == 8.0
    assert opts.threshold is None
    assert opts.edge_guidance is False
    assert opts.show_progress is True
    assert opts.batch_size == 1000
    assert opts.seed is None


def test_job_options_camel_case():
    """Front-end camelCase keys and snake_case keys validate the same."""
    camel = validators.JobOptions.model_validate({
        "interval": 6, "edgeGuidance": True, "maxSegments": 100, "detailLevel": 0.8,
    })
    snake = validators.JobOptions.model_validate({
        "interval": 6, "edge_guidance": True, "max_segments": 100, "detail_level": 0.8,
    })
    assert camel == snake
    assert camel.edge_guidance is True
    assert camel.max_segments == 100

    # Unknown keys are ignored
    assert validators.JobOptions.model_validate({"renderMode": "contours"}) == validators.JobOptions()


def test_job_options_bounds():
    with pytest.raises(ValidationError):
        validators.JobOptions(interval=0)
    with pytest.raises(ValidationError):
        validators.JobOptions(edge_sensitivity=1.5)
    with pytest.raises(ValidationError):
        validators.JobOptions(threshold=-0.1)
    with pytest.raises(ValidationError):
        validators.JobOptions(batch_size=0)


def test_segment_cap():
    """0 and None both mean no cap."""
    assert validators.JobOptions(max_segments=0).segment_cap is None
    assert validators.JobOptions().segment_cap is None
    assert validators.JobOptions(max_segments=12).segment_cap == 12


def test_merge_options():
    defaults = validators.JobOptions(interval=12.0, detail_level=0.2)
    merged = validators.merge_options(defaults, {"detailLevel": 0.9})

    assert merged.interval == 12.0
    assert merged.detail_level == 0.9
    assert validators.merge_options(defaults, None) is defaults
    assert validators.merge_options(defaults, {}) is defaults


def test_scheduler_max_units():
    assert validators.SchedulerConfig(max_units=3).resolved_max_units() == 3
    assert validators.SchedulerConfig().resolved_max_units() == max(1, os.cpu_count() or 1)
    with pytest.raises(ValidationError):
        validators.SchedulerConfig(max_units=0)


def test_logging_config_level():
    cfg = validators.LoggingConfig(log_level="debug", json=True)
    assert cfg.log_level == "DEBUG"
    assert cfg.setup_kwargs() == {'log_level': "DEBUG", 'log_file': None, 'json': True, 'color': True}
    with pytest.raises(ValidationError):
        validators.LoggingConfig(log_level="LOUD")


def test_load_shipped_config():
    cfg = validators.load_engine_config(CONFIG_PATH)
    assert cfg.schema_version == "marching_waves.v1"
    assert cfg.scheduler.max_units is None
    assert cfg.scheduler.memory_pressure_ratio == 0.8
    assert cfg.defaults.interval == 8.0
    assert cfg.logging.log_level == "INFO"


def test_config_roundtrip(tmp_path):
    """Dump with aliases, load again, get an equal model."""
    cfg = validators.EngineConfigV1(
        scheduler=validators.SchedulerConfig(max_units=2, idle_timeout_s=5.0),
        defaults=validators.JobOptions(interval=4.0, edge_guidance=True, seed=3),
    )
    path = tmp_path / "engine.yaml"
    fs.atomic_yaml_dump(cfg.model_dump(by_alias=True), path)

    raw = fs.load_yaml(path)
    assert raw['schema'] == "marching_waves.v1"
    assert raw['defaults']['edgeGuidance'] is True

    assert validators.load_engine_config(path) == cfg


def test_wrong_schema(tmp_path):
    path = tmp_path / "bad.yaml"
    fs.atomic_yaml_dump({"schema": "marching_waves.v0"}, path)
    with pytest.raises(ValueError, match="validation failed"):
        validators.load_engine_config(path)


def test_missing_config(tmp_path):
    with pytest.raises(FileNotFoundError):
        validators.load_engine_config(tmp_path / "nope.yaml")
