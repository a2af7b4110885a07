"""Pytest fixtures and configuration for mailtriage tests.

Provides common fixtures for configuration, database, and seeding helpers.
"""

import os
from pathlib import Path
from typing import Any, Generator

import pytest

from mailtriage.config import CONFIG_PATH_ENV_VAR, reset_config
from mailtriage.config_schema import AppConfig
from mailtriage.db.store import DatabaseStore, User


@pytest.fixture(autouse=True)
def reset_config_singleton() -> Generator[None, None, None]:
    """Reset the config singleton before each test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def temp_config_dir(tmp_path: Path) -> Path:
    """Create a temporary config directory."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    return config_dir


@pytest.fixture
def sample_config_yaml() -> str:
    """Return a minimal valid config.yaml content."""
    return """
schema_version: 1

database:
  path: "data/test.db"

retry:
  max_emails_per_run: 25
  cooldown_hours: 24
  max_error_age_hours: 168
  delay_between_emails_ms: 0

suggestions:
  archive_min_count: 5
"""


@pytest.fixture
def sample_config_dict() -> dict[str, Any]:
    """Return a minimal valid config as a dictionary."""
    return {
        "schema_version": 1,
        "retry": {"delay_between_emails_ms": 0},
    }


@pytest.fixture
def sample_config(sample_config_dict: dict[str, Any]) -> AppConfig:
    """Return a minimal valid AppConfig instance."""
    return AppConfig(**sample_config_dict)


@pytest.fixture
def config_file(temp_config_dir: Path, sample_config_yaml: str) -> Path:
    """Create a temporary config file with valid content."""
    config_path = temp_config_dir / "config.yaml"
    config_path.write_text(sample_config_yaml)
    return config_path


@pytest.fixture
def set_config_env(config_file: Path) -> Generator[None, None, None]:
    """Point MAILTRIAGE_CONFIG_PATH at the temporary config file."""
    old_value = os.environ.get(CONFIG_PATH_ENV_VAR)
    os.environ[CONFIG_PATH_ENV_VAR] = str(config_file)
    yield
    if old_value is None:
        del os.environ[CONFIG_PATH_ENV_VAR]
    else:
        os.environ[CONFIG_PATH_ENV_VAR] = old_value


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """Create a temporary data directory."""
    data = tmp_path / "data"
    data.mkdir()
    return data


@pytest.fixture
async def store(data_dir: Path) -> DatabaseStore:
    """Return an initialized DatabaseStore with one onboarded user."""
    s = DatabaseStore(data_dir / "test.db")
    await s.initialize()
    await s.save_user(User(id="user-1", email="user@example.com", onboarding_completed=True))
    return s
