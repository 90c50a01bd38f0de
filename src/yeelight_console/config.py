"""Configuration management for yeelight-console."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml

from .protocol import DEFAULT_PORT

logger = logging.getLogger(__name__)

# Default configuration directory
DEFAULT_CONFIG_DIR = Path.home() / ".yeelight_console"
DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.yaml"

ENV_ADDRESS = "YEELIGHT_ADDR"
ENV_PORT = "YEELIGHT_PORT"

OUTPUT_FORMATS = ("plain", "json", "yaml", "table")


class ConfigError(ValueError):
    """Raised when configuration values cannot be used."""


@dataclass
class BulbProfile:
    """Address of one bulb."""

    name: str
    address: str
    port: int = DEFAULT_PORT

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {"name": self.name, "address": self.address, "port": self.port}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BulbProfile:
        """Create from dictionary."""
        return cls(
            name=data.get("name", "default"),
            address=data["address"],
            port=int(data.get("port", DEFAULT_PORT)),
        )


@dataclass
class ConsoleConfig:
    """Main configuration for yeelight-console."""

    bulbs: dict[str, BulbProfile] = field(default_factory=dict)
    active_bulb: str = "default"
    connect_timeout: float = 5.0
    request_timeout: float = 5.0
    notification_buffer: int = 10
    output: str = "plain"

    def get_active_bulb(self) -> Optional[BulbProfile]:
        """Get the currently active bulb profile."""
        return self.bulbs.get(self.active_bulb)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "bulbs": {name: profile.to_dict() for name, profile in self.bulbs.items()},
            "active_bulb": self.active_bulb,
            "connect_timeout": self.connect_timeout,
            "request_timeout": self.request_timeout,
            "notification_buffer": self.notification_buffer,
            "output": self.output,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ConsoleConfig:
        """Create from dictionary."""
        bulbs = {
            name: BulbProfile.from_dict(profile_data)
            for name, profile_data in (data.get("bulbs") or {}).items()
        }
        output = data.get("output", "plain")
        if output not in OUTPUT_FORMATS:
            raise ConfigError(f"output must be one of {', '.join(OUTPUT_FORMATS)}")

        return cls(
            bulbs=bulbs,
            active_bulb=data.get("active_bulb", "default"),
            connect_timeout=float(data.get("connect_timeout", 5.0)),
            request_timeout=float(data.get("request_timeout", 5.0)),
            notification_buffer=int(data.get("notification_buffer", 10)),
            output=output,
        )

    @classmethod
    def load(cls, config_file: Path = DEFAULT_CONFIG_FILE) -> ConsoleConfig:
        """Load configuration from file."""
        if not config_file.exists():
            return cls.create_default()

        try:
            with open(config_file, "r") as f:
                data = yaml.safe_load(f) or {}
            return cls.from_dict(data)
        except (OSError, yaml.YAMLError, KeyError, TypeError, ValueError, AttributeError) as e:
            logger.warning("Failed to load config from %s: %s", config_file, e)
            return cls.create_default()

    def save(self, config_file: Path = DEFAULT_CONFIG_FILE) -> None:
        """Save configuration to file."""
        config_file.parent.mkdir(parents=True, exist_ok=True)

        with open(config_file, "w") as f:
            yaml.safe_dump(self.to_dict(), f, sort_keys=False, default_flow_style=False)

    @classmethod
    def create_default(cls) -> ConsoleConfig:
        """Create default configuration (no bulbs known yet)."""
        return cls()

    def resolve_address(
        self,
        address: Optional[str] = None,
        port: Optional[int] = None,
        profile: Optional[str] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> tuple[str, int]:
        """
        Work out which bulb to talk to.

        Precedence: explicit arguments, then an explicitly named profile,
        then YEELIGHT_ADDR / YEELIGHT_PORT, then the active profile.

        Raises:
            ConfigError: if no address is available or the port is invalid
        """
        env = os.environ if environ is None else environ
        if profile:
            selected = self.bulbs.get(profile)
            if selected is None:
                raise ConfigError(f"Unknown bulb profile '{profile}'")
            address = address or selected.address
            if port is None:
                port = selected.port
        else:
            selected = self.get_active_bulb()

        resolved_address = address or env.get(ENV_ADDRESS) or (selected.address if selected else None)
        if not resolved_address:
            raise ConfigError(
                f"No bulb address given (pass --address, set {ENV_ADDRESS}, or add a profile)"
            )

        if port is not None:
            resolved_port = port
        elif env.get(ENV_PORT):
            try:
                resolved_port = int(env[ENV_PORT])
            except ValueError as exc:
                raise ConfigError(f"{ENV_PORT} must be an integer, got '{env[ENV_PORT]}'") from exc
        elif selected is not None:
            resolved_port = selected.port
        else:
            resolved_port = DEFAULT_PORT

        if not 0 < resolved_port < 65536:
            raise ConfigError(f"Port must be between 1 and 65535, got {resolved_port}")
        return resolved_address, resolved_port
