"""Tests for configuration models and loading."""

import pytest
import yaml
from pydantic import ValidationError

from cli.config import CONFIG_FILENAME, find_config, load_config, load_config_model
from cli.config_models import (
    AppConfig,
    BackendConfig,
    DetectionConfig,
    HindsightFeedbackConfig,
    LoggingConfig,
    RetryConfig,
)


@pytest.fixture
def no_home_config(tmp_path, monkeypatch):
    """Point the user-level config lookup at an empty directory."""
    monkeypatch.setenv("HOME", str(tmp_path / "home"))


class TestModels:
    def test_defaults(self):
        config = AppConfig()
        assert config.feedback.enabled is False
        assert config.feedback.detection.explicit is True
        assert config.feedback.detection.semantic_threshold == 0.5
        assert config.feedback.hindsight.send_feedback is True
        assert config.feedback.hindsight.boost_weight == 0.3
        assert config.backend.port == 8888
        assert config.retry.max_attempts == 3
        assert config.logging.level == "INFO"

    def test_threshold_range(self):
        with pytest.raises(ValidationError):
            DetectionConfig(semantic_threshold=1.5)

    def test_bad_trigger_regex(self):
        with pytest.raises(ValidationError, match="Invalid trigger pattern"):
            DetectionConfig(extra_triggers=["(unclosed"])

    def test_boost_weight_range(self):
        with pytest.raises(ValidationError):
            HindsightFeedbackConfig(boost_weight=-0.1)

    def test_port_range(self):
        with pytest.raises(ValidationError):
            BackendConfig(port=70000)

    def test_retry_bounds(self):
        with pytest.raises(ValidationError):
            RetryConfig(max_attempts=0)
        with pytest.raises(ValidationError):
            RetryConfig(initial_delay=2.0, max_delay=1.0)

    def test_log_level_normalized(self):
        assert LoggingConfig(level="debug").level == "DEBUG"
        with pytest.raises(ValidationError):
            LoggingConfig(level="LOUD")

    def test_env_expansion(self, monkeypatch):
        monkeypatch.setenv("HINDSIGHT_KEY", "abc123")
        config = AppConfig.from_dict({"backend": {"api_key": "${HINDSIGHT_KEY}"}})
        assert config.backend.api_key == "abc123"

    def test_env_expansion_unset(self, monkeypatch):
        monkeypatch.delenv("HINDSIGHT_KEY", raising=False)
        config = AppConfig.from_dict({"backend": {"api_key": "${HINDSIGHT_KEY}"}})
        assert config.backend.api_key is None

    def test_bare_feedback_section(self):
        config = AppConfig.from_dict({"enabled": True, "detection": {"semantic": False}, "debug": True})
        assert config.feedback.enabled is True
        assert config.feedback.detection.semantic is False
        assert config.feedback.debug is True

    def test_to_dict(self):
        data = AppConfig().to_dict()
        assert data["feedback"]["enabled"] is False
        assert data["retry"]["initial_delay"] == 0.1


class TestLoading:
    def test_no_file_gives_defaults(self, project_dir, no_home_config):
        assert find_config(project_dir) is None
        assert load_config_model(project_dir=project_dir).feedback.enabled is False

    def test_project_file(self, project_dir, no_home_config):
        path = project_dir / CONFIG_FILENAME
        path.write_text(
            yaml.dump(
                {
                    "feedback": {"enabled": True, "detection": {"semantic_threshold": 0.4}},
                    "backend": {"host": "memory.local", "bank_id": "team"},
                }
            )
        )
        assert find_config(project_dir) == path

        config = load_config_model(project_dir=project_dir)
        assert config.feedback.enabled is True
        assert config.feedback.detection.semantic_threshold == 0.4
        assert config.backend.host == "memory.local"
        assert config.backend.bank_id == "team"

    def test_user_file(self, project_dir, tmp_path, no_home_config):
        user_dir = tmp_path / "home" / ".recall-feedback"
        user_dir.mkdir(parents=True)
        (user_dir / "config.yaml").write_text("feedback:\n  enabled: true\n")
        assert load_config_model(project_dir=project_dir).feedback.enabled is True

    def test_explicit_path(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text("retry:\n  max_attempts: 5\n")
        assert load_config_model(path).retry.max_attempts == 5

    def test_load_config_dict(self, tmp_path):
        path = tmp_path / "custom.yaml"
        path.write_text("logging:\n  level: warning\n")
        assert load_config(path)["logging"]["level"] == "WARNING"

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("feedback: [unclosed\n")
        with pytest.raises(ValueError, match="Invalid YAML"):
            load_config_model(path)

    def test_not_a_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ValueError, match="mapping"):
            load_config_model(path)

    def test_validation_error(self, tmp_path):
        path = tmp_path / "bad.yaml"
        path.write_text("backend:\n  port: 0\n")
        with pytest.raises(ValueError, match="Config validation failed"):
            load_config_model(path)

    def test_empty_file(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")
        assert load_config_model(path).feedback.enabled is False
