"""
Unit tests for the configuration layer.

Tests:
- YAML loading and ${VAR:default} placeholders
- Environment variable overrides
- Validation errors
- Caching and reload
"""

import os

import pytest
from pydantic import ValidationError

from src.config.loader import ConfigLoader, deep_merge
from src.config.settings import (
    AppConfig,
    OrderFlowConfig,
    RiskEngineConfig,
    SystemConfig,
    VolumeProfileConfig,
)


OVERRIDE_VARS = ("ENVIRONMENT", "LOG_LEVEL", "LOG_JSON", "API_HOST", "API_PORT")


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep host environment overrides out of the tests."""
    for name in OVERRIDE_VARS:
        monkeypatch.delenv(name, raising=False)
    for name in list(os.environ):
        if name.startswith("ANALYTICS__"):
            monkeypatch.delenv(name)


@pytest.fixture
def config_dir(tmp_path):
    (tmp_path / "config.yaml").write_text(
        "system:\n"
        "  environment: ${ENVIRONMENT:staging}\n"
        "  log_level: WARNING\n"
        "  candle_limit: 200\n"
        "volume_profile:\n"
        "  bucket_count: 40\n"
        "  weighting: typical\n"
        "order_flow:\n"
        "  detect_absorption: true\n"
        "risk:\n"
        "  reference_positions:\n"
        "    - symbol: SOLUSDT\n"
        "      risk_percent: ${SOL_RISK:0.5}\n"
        "      correlation: 0.7\n"
    )
    return tmp_path


# ============================================================================
# Loading Tests
# ============================================================================

def test_load_yaml_sections(config_dir):
    config = ConfigLoader(config_dir=config_dir).load_app_config()

    assert config.system.environment == "staging"
    assert config.system.log_level == "WARNING"
    assert config.system.candle_limit == 200
    assert config.volume_profile.bucket_count == 40
    assert config.volume_profile.weighting == "typical"
    assert config.order_flow.detect_absorption is True
    assert config.market_structure.swing_window == 5
    assert [p.symbol for p in config.risk.reference_positions] == ["SOLUSDT"]
    assert config.risk.reference_positions[0].risk_percent == 0.5


def test_placeholder_reads_environment(config_dir, monkeypatch):
    monkeypatch.setenv("SOL_RISK", "2.5")

    config = ConfigLoader(config_dir=config_dir).load_app_config()

    assert config.risk.reference_positions[0].risk_percent == 2.5


def test_placeholder_without_default(tmp_path, monkeypatch):
    monkeypatch.delenv("ANALYTICS_LOG_FILE", raising=False)
    (tmp_path / "config.yaml").write_text("system:\n  log_file: ${ANALYTICS_LOG_FILE}\n")

    config = ConfigLoader(config_dir=tmp_path).load_app_config()

    assert config.system.log_file == ""


def test_missing_file_uses_defaults(tmp_path):
    config = ConfigLoader(config_dir=tmp_path).load_app_config()

    assert config == AppConfig()


def test_load_yaml_missing_file_raises(tmp_path):
    with pytest.raises(FileNotFoundError):
        ConfigLoader(config_dir=tmp_path).load_yaml("absent")


def test_shipped_config_is_valid():
    config = ConfigLoader().load_app_config(use_cache=False)

    assert config.volume_profile.bucket_count == 100
    assert config.risk.kelly_win_rate == 0.6
    assert len(config.risk.reference_positions) == 2


# ============================================================================
# Environment Override Tests
# ============================================================================

def test_environment_overrides(config_dir, monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "production")
    monkeypatch.setenv("LOG_LEVEL", "debug")
    monkeypatch.setenv("LOG_JSON", "yes")
    monkeypatch.setenv("API_HOST", "127.0.0.1")
    monkeypatch.setenv("API_PORT", "9000")

    system = ConfigLoader(config_dir=config_dir).load_app_config().system

    assert system.environment == "production"
    assert system.log_level == "DEBUG"
    assert system.log_json is True
    assert system.api_host == "127.0.0.1"
    assert system.api_port == 9000


def test_invalid_override_raises(config_dir, monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "moon")

    with pytest.raises(ValidationError):
        ConfigLoader(config_dir=config_dir).load_app_config()


# ============================================================================
# Validation Tests
# ============================================================================

def test_invalid_yaml_value_raises(tmp_path):
    (tmp_path / "config.yaml").write_text("volume_profile:\n  bucket_count: 0\n")

    with pytest.raises(ValidationError):
        ConfigLoader(config_dir=tmp_path).load_app_config()


@pytest.mark.parametrize("factory", [
    lambda: SystemConfig(api_port=80),
    lambda: VolumeProfileConfig(ohlc_weights=(0.5, -0.1, 0.3, 0.3)),
    lambda: VolumeProfileConfig(ohlc_weights=(0.0, 0.0, 0.0, 0.0)),
    lambda: OrderFlowConfig(volume_average_window=5, activity_lookback=10),
    lambda: RiskEngineConfig(kelly_win_rate=1.5),
])
def test_model_validation(factory):
    with pytest.raises(ValidationError):
        factory()


# ============================================================================
# Cache Tests
# ============================================================================

def test_cached_config_is_reused(config_dir):
    loader = ConfigLoader(config_dir=config_dir)

    assert loader.load_app_config() is loader.load_app_config()
    assert loader.load_app_config(use_cache=False) is not loader.load_app_config()


def test_reload_picks_up_changes(config_dir):
    loader = ConfigLoader(config_dir=config_dir)
    assert loader.load_app_config().volume_profile.bucket_count == 40

    (config_dir / "config.yaml").write_text("volume_profile:\n  bucket_count: 60\n")

    assert loader.load_app_config().volume_profile.bucket_count == 40
    assert loader.reload().volume_profile.bucket_count == 60


def test_reload_result_is_cached(config_dir):
    loader = ConfigLoader(config_dir=config_dir)
    loader.load_app_config()
    (config_dir / "config.yaml").write_text("volume_profile:\n  bucket_count: 60\n")

    reloaded = loader.reload()
    (config_dir / "config.yaml").write_text("volume_profile:\n  bucket_count: 70\n")

    assert loader.load_app_config() is reloaded
    assert loader.load_app_config().volume_profile.bucket_count == 60


def test_clear_cache(config_dir):
    loader = ConfigLoader(config_dir=config_dir)
    first = loader.load_app_config()

    loader.clear_cache()

    assert loader.load_app_config() is not first


# ============================================================================
# Layering Tests
# ============================================================================

def test_embedded_placeholder(tmp_path, monkeypatch):
    monkeypatch.setenv("LOG_DIR", "/var/log/analytics")
    (tmp_path / "config.yaml").write_text("system:\n  log_file: ${LOG_DIR}/engine.log\n")

    config = ConfigLoader(config_dir=tmp_path).load_app_config()

    assert config.system.log_file == "/var/log/analytics/engine.log"


def test_environment_overlay(config_dir):
    (config_dir / "config.staging.yaml").write_text(
        "volume_profile:\n"
        "  bucket_count: 80\n"
        "market_structure:\n"
        "  max_breaks: 3\n"
    )

    config = ConfigLoader(config_dir=config_dir).load_app_config()

    assert config.volume_profile.bucket_count == 80
    assert config.volume_profile.weighting == "typical"
    assert config.market_structure.max_breaks == 3


def test_overlay_follows_environment_variable(config_dir, monkeypatch):
    (config_dir / "config.staging.yaml").write_text("volume_profile:\n  bucket_count: 80\n")
    (config_dir / "config.production.yaml").write_text("volume_profile:\n  bucket_count: 90\n")
    monkeypatch.setenv("ENVIRONMENT", "production")

    config = ConfigLoader(config_dir=config_dir).load_app_config()

    assert config.volume_profile.bucket_count == 90


def test_nested_environment_overrides(config_dir, monkeypatch):
    monkeypatch.setenv("ANALYTICS__VOLUME_PROFILE__BUCKET_COUNT", "64")
    monkeypatch.setenv("ANALYTICS__ORDER_FLOW__DETECT_ABSORPTION", "false")
    monkeypatch.setenv("ANALYTICS__IGNORED", "1")

    config = ConfigLoader(config_dir=config_dir).load_app_config()

    assert config.volume_profile.bucket_count == 64
    assert config.volume_profile.weighting == "typical"
    assert config.order_flow.detect_absorption is False


def test_deep_merge_does_not_mutate_inputs():
    base = {"risk": {"atr_period": 14, "sr_window": 2}, "system": {"log_level": "INFO"}}
    overlay = {"risk": {"atr_period": 21}}

    merged = deep_merge(base, overlay)

    assert merged == {"risk": {"atr_period": 21, "sr_window": 2}, "system": {"log_level": "INFO"}}
    assert base["risk"]["atr_period"] == 14
