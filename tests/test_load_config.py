import pytest
from pydantic import ValidationError

from telemetry_sim.config.load_config import Settings, load_settings, load_simulation_config

CONFIG_TEXT = """
simulation:
  tick_interval_ms: "${TEST_TICK_MS:1500}"
  step_meters: 25
  accel_sample_count: 4
  max_route_distance_m: 3000
  accel_range: [-1.0, 1.0]
  clock_interval_ms: 1000
sync:
  match_fields: [type, timestamp]
services:
  data_api_url: "${TEST_DATA_URL:http://localhost:1976}"
  route_api_url: "http://osrm.test"
  elevation_api_url: "http://meteo.test"
  request_timeout_s: 3
"""


@pytest.fixture
def config_path(tmp_path):
    path = tmp_path / "simulation_config.yaml"
    path.write_text(CONFIG_TEXT)
    return path


def test_defaults_apply_when_environment_is_unset(config_path, monkeypatch):
    monkeypatch.delenv("TEST_TICK_MS", raising=False)
    monkeypatch.delenv("TEST_DATA_URL", raising=False)

    raw = load_simulation_config(config_path)
    assert raw["simulation"]["tick_interval_ms"] == "1500"
    assert raw["services"]["data_api_url"] == "http://localhost:1976"

    settings = load_settings(config_path)
    assert settings.simulation.tick_interval_ms == 1500
    assert settings.simulation.accel_range == (-1.0, 1.0)
    assert settings.sync.match_fields == ["type", "timestamp"]
    assert settings.logging.level == "INFO"


def test_environment_overrides_defaults(config_path, monkeypatch):
    monkeypatch.setenv("TEST_TICK_MS", "250")
    monkeypatch.setenv("TEST_DATA_URL", "http://collector.example:9000")

    settings = load_settings(config_path)
    assert settings.simulation.tick_interval_ms == 250
    assert settings.services.data_api_url == "http://collector.example:9000"


def test_config_path_can_come_from_environment(config_path, monkeypatch):
    monkeypatch.setenv("SIM_CONFIG_PATH", str(config_path))
    assert load_settings().simulation.step_meters == 25


def test_bundled_config_is_valid(monkeypatch):
    monkeypatch.delenv("SIM_CONFIG_PATH", raising=False)
    settings = load_settings()
    assert settings.simulation.max_route_distance_m == 3000
    assert settings.simulation.accel_range == (-0.5, 0.5)
    assert settings.simulation.clock_interval_ms == 1000
    assert settings.sync.match_fields == ["type", "timestamp", "lat"]


def test_inverted_accel_range_is_rejected(config_path):
    raw = load_simulation_config(config_path)
    raw["simulation"]["accel_range"] = [0.5, -0.5]
    with pytest.raises(ValidationError):
        Settings.model_validate(raw)
