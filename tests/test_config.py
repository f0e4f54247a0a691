"""Tests for engine configuration models."""
import json

import pytest
from pydantic import ValidationError

from territory_conquest.config import (
    ActivityLimits,
    ConditionerConfig,
    EngineConfig,
    GeometryConfig,
)
from territory_conquest.models import ActivityType


class TestConditionerConfig:
    def test_default_walk_limits(self):
        limits = ConditionerConfig().limits_for(ActivityType.WALK)
        assert limits.device_speed_max_mps == pytest.approx(7 / 3.6)
        assert limits.implied_speed_max_mps == 4.0

    def test_limits_for_accepts_string(self):
        assert ConditionerConfig().limits_for("RIDE").implied_speed_max_mps == 22.0

    def test_every_activity_has_limits(self):
        cfg = ConditionerConfig()
        for activity in ActivityType:
            assert cfg.limits_for(activity).expected_speed_mps > 0

    def test_missing_activity_rejected(self):
        with pytest.raises(ValidationError, match="RUN"):
            ConditionerConfig(activities={
                ActivityType.WALK: ActivityLimits(
                    device_speed_max_mps=2, implied_speed_max_mps=4, expected_speed_mps=1,
                ),
            })

    def test_negative_accuracy_rejected_on_assignment(self):
        cfg = ConditionerConfig()
        with pytest.raises(ValidationError):
            cfg.max_accuracy_m = -1


class TestActivityLimits:
    def test_implied_must_be_at_least_device(self):
        with pytest.raises(ValidationError, match="implied_speed_max_mps"):
            ActivityLimits(device_speed_max_mps=5, implied_speed_max_mps=4, expected_speed_mps=1)


class TestEngineConfig:
    def test_defaults(self):
        cfg = EngineConfig()
        assert cfg.geometry.loop_closure_tolerance_m == 50.0
        assert cfg.conquest.consumed_remainder_m2 == 1.0

    def test_from_json_file_partial_override(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"geometry": {"loop_closure_tolerance_m": 30}}))
        cfg = EngineConfig.from_json_file(path)
        assert cfg.geometry.loop_closure_tolerance_m == 30
        assert cfg.geometry.min_loop_points == GeometryConfig().min_loop_points
        assert cfg.conditioner.max_accuracy_m == 30.0

    def test_from_json_file_invalid_value(self, tmp_path):
        path = tmp_path / "config.json"
        path.write_text(json.dumps({"conquest": {"min_overlap_m2": -5}}))
        with pytest.raises(ValidationError):
            EngineConfig.from_json_file(path)


def test_load_config_reads_env_var(tmp_path, monkeypatch):
    from territory_conquest.server import CONFIG_ENV_VAR, load_config

    path = tmp_path / "config.json"
    path.write_text(json.dumps({"conditioner": {"max_accuracy_m": 20}}))
    monkeypatch.setenv(CONFIG_ENV_VAR, str(path))
    assert load_config().conditioner.max_accuracy_m == 20


def test_load_config_defaults_without_env_var(monkeypatch):
    from territory_conquest.server import CONFIG_ENV_VAR, load_config

    monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
    assert load_config() == EngineConfig()
