# src/httpfakes/config.py
"""Configuration schema and loading for fake HTTP services.

Uses Pydantic for validation with frozen (immutable) models.
Configuration precedence: overrides > YAML file > defaults.

A YAML file can declare static endpoints as well as server settings:

    port: 8200
    seed: 7
    endpoints:
      - path: /hello
        methods: [GET]
        response: '{"message": "hello"}'
      - path: /flaky
        failure_rate_percent: 50
        max_failure_count: 2
        failure:
          status_code: 503
          body: '{"error": "try again"}'
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from httpfakes.endpoint import (
    DEFAULT_CONTENT_TYPE,
    DEFAULT_MAX_FAILURE_COUNT,
    Endpoint,
    Headers,
    static_response,
)


class FailureResponseConfig(BaseModel):
    """Static response returned when a failure is injected."""

    model_config = {"frozen": True, "extra": "forbid"}

    status_code: int = Field(
        default=500,
        ge=100,
        le=599,
        description="HTTP status of the injected failure",
    )
    body: str = Field(
        default='{"error": "injected failure"}',
        description="Body of the injected failure",
    )
    content_type: str = Field(
        default=DEFAULT_CONTENT_TYPE,
        description="Content-Type of the injected failure",
    )
    headers: dict[str, str] = Field(
        default_factory=dict,
        description="Extra headers on the injected failure",
    )


class EndpointConfig(BaseModel):
    """Declarative endpoint, the YAML counterpart of Endpoint."""

    model_config = {"frozen": True, "extra": "forbid"}

    path: str = Field(description="Route pattern, e.g. /users/:id")
    methods: list[str] = Field(
        default_factory=list,
        description="Methods answered by this endpoint (empty = any standard method)",
    )
    response: str = Field(default="", description="Response body written verbatim")
    status_code: int = Field(
        default=0,
        ge=0,
        le=599,
        description="Response status (0 = 200)",
    )
    content_type: str = Field(default="", description="Content-Type (empty = application/json)")
    headers: dict[str, str] = Field(default_factory=dict, description="Headers set on every response")
    failure_rate_percent: int = Field(
        default=0,
        description="Chance (0-100) that a call is turned into a failure",
    )
    max_failure_count: int | None = Field(
        default=None,
        ge=0,
        description="Calls eligible for failure injection (None = service default)",
    )
    failure: FailureResponseConfig | None = Field(
        default=None,
        description="Response used when a failure is injected",
    )
    name: str | None = Field(default=None, description="Label used in logs and reports")

    @field_validator("path")
    @classmethod
    def validate_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError(f"path must start with '/', got {v!r}")
        return v

    @field_validator("methods")
    @classmethod
    def normalize_methods(cls, v: list[str]) -> list[str]:
        return [m.upper() for m in v]

    @model_validator(mode="after")
    def validate_failure(self) -> EndpointConfig:
        """Chaos needs a failure response to deliver."""
        if self.failure_rate_percent > 0 and self.failure is None:
            raise ValueError(f"endpoint {self.path} sets failure_rate_percent={self.failure_rate_percent} but no failure response")
        return self

    def to_endpoint(self) -> Endpoint:
        failure_handler = None
        if self.failure is not None:
            failure_handler = static_response(
                self.failure.status_code,
                self.failure.body,
                content_type=self.failure.content_type,
                headers=self.failure.headers,
            )
        return Endpoint(
            path=self.path,
            methods=tuple(self.methods),
            response=self.response,
            status_code=self.status_code,
            content_type=self.content_type,
            headers=Headers(self.headers),
            failure_rate_percent=self.failure_rate_percent,
            failure_handler=failure_handler,
            max_failure_count=self.max_failure_count,
            name=self.name,
        )


class FakeServiceConfig(BaseModel):
    """Top-level fake service configuration."""

    model_config = {"frozen": True, "extra": "forbid"}

    host: str = Field(
        default="127.0.0.1",
        description="Host address to bind to",
    )
    port: int = Field(
        default=0,
        ge=0,
        le=65535,
        description="Port to listen on (0 = any free port)",
    )
    startup_timeout_sec: float = Field(
        default=5.0,
        gt=0,
        description="How long run() waits for the server to accept connections",
    )
    shutdown_timeout_sec: float = Field(
        default=5.0,
        gt=0,
        description="How long tidy_up() waits for the server thread to exit",
    )
    default_max_failure_count: int = Field(
        default=DEFAULT_MAX_FAILURE_COUNT,
        ge=0,
        description="Failure budget for endpoints that do not set their own",
    )
    seed: int | None = Field(
        default=None,
        description="Seed for the failure draw (None = nondeterministic)",
    )
    endpoints: list[EndpointConfig] = Field(
        default_factory=list,
        description="Statically declared endpoints",
    )


def deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Deep merge two dicts, with override taking precedence.

    Returns a new dict; inputs are not mutated.
    """
    result = dict(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = value
    return result


def load_config(
    *,
    config_file: Path | None = None,
    overrides: dict[str, Any] | None = None,
) -> FakeServiceConfig:
    """Load a fake service configuration with precedence handling.

    Precedence (highest to lowest):
    1. overrides - Direct overrides (e.g. CLI flags)
    2. config_file - User's YAML configuration file
    3. defaults - Built-in Pydantic defaults

    Raises:
        FileNotFoundError: If config_file does not exist.
        yaml.YAMLError: If YAML is malformed.
        ValueError: If the file is not a YAML mapping.
        pydantic.ValidationError: If the final config fails validation.
    """
    config_dict: dict[str, Any] = {}

    if config_file is not None:
        if not config_file.exists():
            raise FileNotFoundError(f"Config file not found: {config_file}")
        with config_file.open() as f:
            loaded = yaml.safe_load(f) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"Config file {config_file} must be a YAML mapping, got {type(loaded).__name__}")
        config_dict = deep_merge(config_dict, loaded)

    if overrides is not None:
        config_dict = deep_merge(config_dict, overrides)

    return FakeServiceConfig(**config_dict)
