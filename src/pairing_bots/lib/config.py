"""
Configuration management and validation for pairing runs.

Loads the YAML configuration file, applies environment overrides and
validates the result into typed settings for logging, telemetry, pairing
defaults, run options and the model runtime.
"""

import os
import yaml
from pathlib import Path
from typing import Dict, Any, Optional, List
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from pairing_bots.models.pair_config import (
    AgentId,
    EventStreamMode,
    EveryNCallsPause,
    ExecutionMode,
    ModelSpec,
    PairAgentConfig,
    PauseStrategy,
    StickyUntilSignoff,
    TurnPolicy,
    WorkspaceMode,
    default_model_a,
    default_model_b,
)


DEFAULT_CONFIG_PATH = "~/.pairing-bots/config.yaml"


class ObservabilityConfig(BaseModel):
    """Configuration for OpenTelemetry export."""
    enabled: bool = False
    service_name: str = "pairing-bots"
    service_version: str = "0.1.0"
    environment: str = "development"
    otlp_endpoint: str = "http://localhost:4317"
    trace_sampling_ratio: float = Field(default=1.0, ge=0.0, le=1.0)
    export_timeout: int = Field(default=30, gt=0)
    resource_attributes: Dict[str, str] = Field(default_factory=dict)


class LoggingConfig(BaseModel):
    """Configuration for logging settings."""
    level: str = Field(default="INFO", pattern="^(DEBUG|INFO|WARNING|ERROR|CRITICAL)$")
    format: str = Field(default="structured", pattern="^(structured|simple)$")
    directory: str = "~/.pairing-bots/logs"
    max_file_size: int = Field(default=10 * 1024 * 1024, gt=0)  # 10MB
    backup_count: int = Field(default=5, ge=1)
    include_trace: bool = True
    environment: str = "development"


class PairDefaultsConfig(BaseModel):
    """Pairing defaults; the working directory is supplied per run."""

    model_config = ConfigDict(protected_namespaces=())

    model_a: ModelSpec = Field(default_factory=default_model_a)
    model_b: ModelSpec = Field(default_factory=default_model_b)
    max_rounds: int = Field(default=8, ge=1)
    driver_starts_as: AgentId = AgentId.A
    pause_strategy: PauseStrategy = Field(default_factory=EveryNCallsPause)
    turn_policy: TurnPolicy = Field(default_factory=StickyUntilSignoff)
    execution_mode: ExecutionMode = ExecutionMode.PAIRED_TURNS

    def to_pair_config(self, cwd: str, **overrides: Any) -> PairAgentConfig:
        """Build a run configuration for the given working directory."""
        values = self.model_dump()
        values.update(overrides)
        values["cwd"] = cwd
        return PairAgentConfig(**values)


class RunConfig(BaseModel):
    """Per-run output and workspace options."""
    event_stream_mode: EventStreamMode = EventStreamMode.COMPACT
    disable_event_stream: bool = False
    workspace_mode: WorkspaceMode = WorkspaceMode.DIRECT
    keep_workspace: bool = False
    compare_strategies: bool = False
    log_file: Optional[str] = None
    event_log_file: Optional[str] = None
    output: Optional[str] = None


class RuntimeConfig(BaseModel):
    """Where model runtimes come from."""
    factory: Optional[str] = Field(None, description="Dotted path 'module:callable'")
    replay_script: Optional[str] = Field(None, description="YAML or JSON replay script")

    @field_validator('factory')
    @classmethod
    def validate_factory(cls, v):
        """Validate factory uses the module:callable form."""
        if v is not None and (":" not in v or v.startswith(":") or v.endswith(":")):
            raise ValueError(f"Runtime factory must look like 'module:callable', got: {v}")
        return v


class PairingBotsConfig(BaseModel):
    """Main pairing-bots configuration."""
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    observability: ObservabilityConfig = Field(default_factory=ObservabilityConfig)
    pair: PairDefaultsConfig = Field(default_factory=PairDefaultsConfig)
    run: RunConfig = Field(default_factory=RunConfig)
    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)

    # Global settings
    debug: bool = False
    config_file_path: Optional[str] = None


class ConfigurationManager:
    """Manages pairing-bots configuration loading and validation."""

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or self._get_default_config_path()
        self.config: Optional[PairingBotsConfig] = None

    def _get_default_config_path(self) -> str:
        """Get the default configuration file path."""
        # Check environment variable first
        if "PAIRING_BOTS_CONFIG_PATH" in os.environ:
            return os.environ["PAIRING_BOTS_CONFIG_PATH"]

        candidates = [
            DEFAULT_CONFIG_PATH,
            "./pairing-bots.yaml"
        ]

        for candidate in candidates:
            path = Path(candidate).expanduser()
            if path.exists():
                return str(path)

        return DEFAULT_CONFIG_PATH

    def load_config(self, config_path: Optional[str] = None) -> PairingBotsConfig:
        """Load and validate configuration; a missing file yields defaults."""
        if config_path:
            self.config_path = config_path

        config_file = Path(self.config_path).expanduser()

        try:
            config_data: Dict[str, Any] = {}
            if config_file.exists():
                with open(config_file, 'r') as f:
                    config_data = yaml.safe_load(f) or {}
                if not isinstance(config_data, dict):
                    raise ConfigurationError(f"Config file {config_file} must contain a mapping")

            # Merge with environment variables
            config_data = self._merge_environment_config(config_data)

            self.config = PairingBotsConfig(**config_data)
            self.config.config_file_path = str(config_file) if config_file.exists() else None

            return self.config

        except ConfigurationError:
            raise
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file {config_file}: {e}")
        except ValidationError as e:
            raise ConfigurationError(f"Configuration validation failed: {e}")
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Error loading configuration: {e}")

    def _merge_environment_config(self, config_data: Dict[str, Any]) -> Dict[str, Any]:
        """Merge configuration with environment variables."""
        env_mappings = {
            "PAIRING_BOTS_LOG_LEVEL": ["logging", "level"],
            "PAIRING_BOTS_DEBUG": ["debug"],
            "OTEL_EXPORTER_OTLP_ENDPOINT": ["observability", "otlp_endpoint"]
        }

        for env_var, config_path in env_mappings.items():
            if env_var in os.environ:
                value: Any = os.environ[env_var]

                if env_var == "PAIRING_BOTS_DEBUG":
                    value = value.lower() in ("true", "1", "yes")
                elif env_var == "PAIRING_BOTS_LOG_LEVEL":
                    value = value.upper()

                # Set nested configuration value
                current = config_data
                for key in config_path[:-1]:
                    current = current.setdefault(key, {})
                current[config_path[-1]] = value

        return config_data

    def get_config(self) -> PairingBotsConfig:
        """Get the loaded configuration."""
        if self.config is None:
            raise ConfigurationError("Configuration not loaded. Call load_config() first.")
        return self.config

    def validate_config(self) -> List[str]:
        """Validate the current configuration and return any warnings."""
        warnings = []
        config = self.get_config()

        if config.debug and config.observability.environment == "production":
            warnings.append("Debug mode enabled in production environment")

        if config.observability.trace_sampling_ratio < 1.0 and config.observability.environment == "development":
            warnings.append("Trace sampling ratio less than 1.0 in development environment")

        if config.runtime.factory is None and config.runtime.replay_script is None:
            warnings.append("No model runtime configured; pass --runtime or --replay-script to run")

        if config.runtime.replay_script and not Path(config.runtime.replay_script).expanduser().exists():
            warnings.append(f"Replay script does not exist: {config.runtime.replay_script}")

        if config.run.keep_workspace and config.run.workspace_mode == WorkspaceMode.DIRECT:
            warnings.append("keep_workspace has no effect in direct workspace mode")

        pause = config.pair.pause_strategy
        if isinstance(pause, EveryNCallsPause) and isinstance(config.pair.turn_policy, StickyUntilSignoff):
            if pause.edits_per_pause * config.pair.turn_policy.max_consecutive_checkpoints > 100:
                warnings.append("Checkpoint safety cap allows more than 100 counted tool calls per driver")

        return warnings


def default_config_data() -> Dict[str, Any]:
    """Default configuration as plain data, suitable for YAML output."""
    return PairingBotsConfig().model_dump(mode="json", exclude={"config_file_path"})


def write_default_config(config_path: str) -> Path:
    """Write the default configuration file and return its path."""
    config_file = Path(config_path).expanduser()
    try:
        config_file.parent.mkdir(parents=True, exist_ok=True)
        with open(config_file, 'w') as f:
            yaml.safe_dump(default_config_data(), f, default_flow_style=False, indent=2, sort_keys=False)
    except OSError as e:
        raise ConfigurationError(f"Could not write configuration to {config_file}: {e}")
    return config_file


class ConfigurationError(Exception):
    """Exception raised for configuration-related errors."""
    pass


def initialize_config(config_path: Optional[str] = None) -> ConfigurationManager:
    """Create a configuration manager and load its configuration."""
    manager = ConfigurationManager(config_path)
    manager.load_config()
    return manager

