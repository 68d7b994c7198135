"""
Configuration system using Pydantic for type-safe settings management.

This module provides the configuration for the feedback engine: where state
lives, how diagnostics are excerpted, the thresholds that drive fix
suggestions and auto-applied improvements, and report sizing.
"""

from __future__ import annotations

import os
import re
from pathlib import Path

import yaml
from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from step_feedback.exceptions import ConfigurationError


class StorageConfig(BaseModel):
    """Persisted state configuration."""

    state_directory: str = Field(default=".step-feedback", description="Directory for persisted state files")
    metrics_capacity: int = Field(default=1000, ge=1, description="Maximum number of metrics retained")


class ClassifierConfig(BaseModel):
    """Error classification configuration."""

    excerpt_length: int = Field(default=500, ge=1, description="Maximum characters kept from a diagnostic")
    fingerprint_length: int = Field(
        default=200, ge=1, description="Template prefix length hashed into the content fingerprint"
    )


class LearningConfig(BaseModel):
    """Thresholds for fix suggestions and template improvements.

    All comparisons are strict: a suggestion needs more than
    ``fix_min_occurrences`` occurrences and a success rate below
    ``fix_max_success_rate``.
    """

    fix_min_occurrences: int = Field(default=3, ge=0, description="Occurrences required before suggesting a fix")
    fix_max_success_rate: float = Field(
        default=0.5, ge=0.0, le=1.0, description="Success rate under which a fix is suggested"
    )
    improvement_min_occurrences: int = Field(
        default=5, ge=0, description="Occurrences required before proposing an improvement"
    )
    improvement_max_success_rate: float = Field(
        default=0.3, ge=0.0, le=1.0, description="Success rate under which an improvement is proposed"
    )
    auto_apply_confidence: float = Field(
        default=0.8, ge=0.0, le=1.0, description="Confidence above which improvements are auto-applied"
    )
    auto_apply_enabled: bool = Field(default=True, description="Whether high-confidence improvements are applied")


class ReportConfig(BaseModel):
    """Learning report configuration."""

    top_patterns: int = Field(default=10, ge=1, description="Number of highest-occurrence patterns reported")


class FeedbackSettings(BaseSettings):
    """Main feedback engine settings.

    Combines all configuration sections. Values come from (in order of
    precedence) explicit arguments, ``STEP_FEEDBACK_*`` environment variables
    and defaults; ``from_yaml`` layers a YAML file on top.
    """

    model_config = SettingsConfigDict(
        env_prefix="STEP_FEEDBACK_",
        env_nested_delimiter="__",
        case_sensitive=False,
    )

    storage: StorageConfig = Field(default_factory=StorageConfig)
    classifier: ClassifierConfig = Field(default_factory=ClassifierConfig)
    learning: LearningConfig = Field(default_factory=LearningConfig)
    report: ReportConfig = Field(default_factory=ReportConfig)

    @property
    def state_dir(self) -> Path:
        """Get state directory as Path object."""
        return Path(self.storage.state_directory)

    @classmethod
    def from_yaml(cls, config_path: str) -> FeedbackSettings:
        """Load settings from YAML file with environment variable interpolation.

        Supports ${VAR_NAME} syntax for environment variable substitution.

        Args:
            config_path: Path to YAML configuration file

        Returns:
            FeedbackSettings instance

        Raises:
            ConfigurationError: If config file is invalid or missing
        """
        config_file = Path(config_path)
        if not config_file.exists():
            raise ConfigurationError(f"Configuration file not found: {config_path}")

        try:
            with open(config_file) as f:
                yaml_content = f.read()
        except OSError as e:
            raise ConfigurationError(f"Cannot read configuration file: {config_path}") from e

        try:
            yaml_content = cls._interpolate_env_vars(yaml_content)
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment variable reference in config: {e}") from e

        try:
            config_dict = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML syntax in {config_path}: {e}") from e

        if config_dict is None:
            config_dict = {}
        if not isinstance(config_dict, dict):
            raise ConfigurationError("Configuration must be a YAML object, not a list or scalar")

        try:
            return cls(**config_dict)
        except Exception as e:
            raise ConfigurationError(f"Failed to validate configuration: {e}") from e

    @staticmethod
    def _interpolate_env_vars(content: str) -> str:
        """Interpolate ${VAR_NAME} placeholders with environment variables.

        Supports two syntaxes:
        - ${VAR_NAME} - Required environment variable (raises if not set)
        - ${VAR_NAME:-default} - Optional with default value

        YAML comment lines are left untouched.

        Raises:
            ValueError: If a required environment variable is not set
        """
        pattern = re.compile(r"\$\{([A-Z_][A-Z0-9_]*)(?::-([^}]*))?\}")

        def replace_var(match: re.Match[str]) -> str:
            var_name = match.group(1)
            default_value = match.group(2)
            value = os.getenv(var_name)

            if value is not None:
                return value
            elif default_value is not None:
                return default_value
            else:
                raise ValueError(f"Environment variable {var_name} is not set")

        def process_line(line: str) -> str:
            if line.lstrip().startswith("#"):
                return line
            return pattern.sub(replace_var, line)

        return "\n".join(process_line(line) for line in content.split("\n"))
