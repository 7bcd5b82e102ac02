"""
Configuration Loader.

Responsible for reading the YAML config file and turning its
sections into validated `SessionConfig` objects.
"""
import yaml
import logging
import uuid
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Any, Optional
from urllib.parse import urlsplit

from liveobjects_samples.mqtt.errors import ConfigError

logger = logging.getLogger(__name__)

API_KEY_PLACEHOLDER = "<<< REPLACE WITH valid API key value >>>"

MODE_DEVICE = "json+device"
MODE_APPLICATION = "application"
ACCESS_MODES = (MODE_DEVICE, MODE_APPLICATION)

MAX_KEEP_ALIVE = 50 # Live Objects rejects anything above 50 seconds
DEFAULT_PORTS = {"tcp": 1883, "ssl": 8883}

@dataclass(frozen=True)
class SessionConfig:
    """Everything needed to open one MQTT session against the platform."""
    server: str
    client_id: str
    username: str
    api_key: str = API_KEY_PLACEHOLDER
    keep_alive: int = 30
    clean_session: bool = True
    auto_reconnect: bool = True
    reconnect_delay: float = 5.0
    publish_queue_size: int = 100
    drain_timeout: float = 2.0

    def __post_init__(self):
        for name in ("server", "client_id", "username", "api_key"):
            if not isinstance(getattr(self, name), str):
                raise ConfigError(f"{name} must be a string, got {getattr(self, name)!r}")
        for name in ("keep_alive", "publish_queue_size"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise ConfigError(f"{name} must be an integer, got {value!r}")
        for name in ("reconnect_delay", "drain_timeout"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                raise ConfigError(f"{name} must be a non-negative number, got {value!r}")
        for name in ("clean_session", "auto_reconnect"):
            if not isinstance(getattr(self, name), bool):
                raise ConfigError(f"{name} must be true or false, got {getattr(self, name)!r}")

        scheme = urlsplit(self.server).scheme
        if scheme not in DEFAULT_PORTS:
            raise ConfigError(f"Unsupported server scheme '{scheme}' in {self.server!r}, expected tcp or ssl")
        if not urlsplit(self.server).hostname:
            raise ConfigError(f"Server URI {self.server!r} has no host")
        try:
            urlsplit(self.server).port
        except ValueError as e:
            raise ConfigError(f"Server URI {self.server!r} has an invalid port: {e}") from e
        if not self.client_id:
            raise ConfigError("client_id must not be empty")
        if self.username not in ACCESS_MODES:
            raise ConfigError(f"username must be one of {ACCESS_MODES}, got {self.username!r}")
        if not 0 < self.keep_alive <= MAX_KEEP_ALIVE:
            raise ConfigError(f"keep_alive must be between 1 and {MAX_KEEP_ALIVE} seconds, got {self.keep_alive}")
        if self.publish_queue_size < 1:
            raise ConfigError("publish_queue_size must be at least 1")

    @property
    def host(self) -> str:
        return urlsplit(self.server).hostname

    @property
    def port(self) -> int:
        parts = urlsplit(self.server)
        return parts.port or DEFAULT_PORTS[parts.scheme]

    @property
    def use_tls(self) -> bool:
        return urlsplit(self.server).scheme == "ssl"

    @classmethod
    def from_dict(cls, section: Optional[Dict[str, Any]], defaults: "SessionConfig") -> "SessionConfig":
        """
        Overlays a config file section on top of `defaults`.
        Unknown keys are reported and ignored.
        """
        section = section or {}
        known = set(cls.__dataclass_fields__)
        unknown = set(section) - known
        if unknown:
            logger.warning(f"Ignoring unknown config keys: {sorted(unknown)}")
        overrides = {key: value for key, value in section.items() if key in known}
        try:
            return replace(defaults, **overrides)
        except TypeError as e:
            raise ConfigError(f"Invalid config section: {e}") from e

# --- Sample defaults ---

def device_defaults() -> SessionConfig:
    """Device mode over TLS, identified by the device URN."""
    return SessionConfig(
        server="ssl://liveobjects.orange-business.com:8883",
        client_id="urn:lo:nsid:sensor:XX56765",
        username=MODE_DEVICE,
    )

def application_defaults() -> SessionConfig:
    """Application mode over plain TCP, with a random application id."""
    return SessionConfig(
        server="tcp://liveobjects.orange-business.com:1883",
        client_id=f"app:{uuid.uuid4()}",
        username=MODE_APPLICATION,
    )

def load_config(config_path: str = "config.yaml") -> Dict[str, Any]:
    """
    Loads the YAML configuration file.
    """
    path = Path(config_path)
    if not path.exists():
        logger.warning(f"Config file not found at {path}. Using defaults.")
        return {}

    try:
        with open(path, 'r') as f:
            config = yaml.safe_load(f) or {}
            logger.info(f"Loaded configuration from {path}")
    except yaml.YAMLError as e:
        logger.error(f"Failed to parse config file: {e}")
        raise ConfigError(f"Failed to parse config file {path}: {e}") from e

    if not isinstance(config, dict):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level")
    return config
