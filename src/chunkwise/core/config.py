"""Application configuration using pydantic-settings with grouped env prefixes."""

from __future__ import annotations

from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings


class DynamoDBConfig(BaseSettings):
    """DynamoDB metadata store configuration."""

    model_config = {"env_prefix": "CHUNKWISE_DYNAMO_"}

    table_suffix: str = ""  # "-dev", "-uat", or "" for prod
    region: str = "us-east-1"
    endpoint_url: str | None = None  # LocalStack override


class BatchConfig(BaseSettings):
    """CSV processing job configuration."""

    model_config = {"env_prefix": "CHUNKWISE_BATCH_"}

    input_file: str = "input.csv"
    output_file: str = "output.csv"
    chunk_size: int = Field(default=10, ge=1)


class AppSettings(BaseSettings):
    """Root application settings aggregating all sub-configs."""

    model_config = {"env_prefix": "CHUNKWISE_"}

    environment: Literal["dev", "uat", "prod"] = "dev"
    log_level: str = "INFO"
    backend: Literal["dynamodb", "memory"] = "dynamodb"

    dynamodb: DynamoDBConfig = DynamoDBConfig()
    batch: BatchConfig = BatchConfig()
