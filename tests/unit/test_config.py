"""Tests for configuration defaults and env overrides."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from chunkwise.core.config import AppSettings, BatchConfig, DynamoDBConfig


def test_default_settings():
    settings = AppSettings()
    assert settings.environment == "dev"
    assert settings.backend == "dynamodb"
    assert settings.batch.chunk_size == 10


def test_batch_config_defaults():
    config = BatchConfig()
    assert config.input_file == "input.csv"
    assert config.output_file == "output.csv"


def test_dynamodb_config_defaults():
    config = DynamoDBConfig()
    assert config.region == "us-east-1"
    assert config.endpoint_url is None
    assert config.table_suffix == ""


def test_env_overrides(monkeypatch):
    monkeypatch.setenv("CHUNKWISE_BATCH_CHUNK_SIZE", "25")
    monkeypatch.setenv("CHUNKWISE_DYNAMO_ENDPOINT_URL", "http://localhost:4566")
    monkeypatch.setenv("CHUNKWISE_BACKEND", "memory")
    assert BatchConfig().chunk_size == 25
    assert DynamoDBConfig().endpoint_url == "http://localhost:4566"
    assert AppSettings().backend == "memory"


def test_chunk_size_must_be_positive():
    with pytest.raises(ValidationError):
        BatchConfig(chunk_size=0)
