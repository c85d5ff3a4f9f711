# load_config.py
import logging
import os
import re
from typing import List, Optional, Tuple

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

load_dotenv()

logger = logging.getLogger(__name__)

ENV_PATTERN = re.compile(r"\$\{([^:}]+)(?::([^}]+))?\}")


class SimulationSettings(BaseModel):
    tick_interval_ms: int = Field(gt=0)
    step_meters: float = Field(gt=0)
    accel_sample_count: int = Field(gt=0)
    max_route_distance_m: float = Field(gt=0)
    accel_range: Tuple[float, float]
    clock_interval_ms: int = Field(gt=0)
    random_seed: Optional[int] = None

    @field_validator("accel_range")
    @classmethod
    def _ordered_range(cls, value):
        low, high = value
        if low >= high:
            raise ValueError(f"accel_range must be [low, high], got {list(value)}")
        return value


class SyncSettings(BaseModel):
    match_fields: List[str]


class ServiceSettings(BaseModel):
    data_api_url: str
    route_api_url: str
    elevation_api_url: str
    request_timeout_s: float = Field(gt=0)


class LoggingSettings(BaseModel):
    level: str = "INFO"


class Settings(BaseModel):
    simulation: SimulationSettings
    sync: SyncSettings
    services: ServiceSettings
    logging: LoggingSettings = LoggingSettings()


def load_simulation_config(path=None):
    base_dir = os.path.dirname(__file__)
    path = path or os.getenv("SIM_CONFIG_PATH") or os.path.join(base_dir, "simulation_config.yaml")

    with open(path, "r") as f:
        config = yaml.safe_load(f)

    expanded_config = _expand_env_vars(config)
    return expanded_config


def load_settings(path=None) -> Settings:
    return Settings.model_validate(load_simulation_config(path))


def _expand_env_vars(config):
    if isinstance(config, dict):
        return {k: _expand_env_vars(v) for k, v in config.items()}
    elif isinstance(config, list):
        return [_expand_env_vars(i) for i in config]
    elif isinstance(config, str):
        match = ENV_PATTERN.fullmatch(config)
        if match:
            env_key, default = match.groups()
            value = os.getenv(env_key, default)
            if value is None:
                logger.warning(f"[CONFIG] Environment variable '{env_key}' is not set.")
            return value
    return config
