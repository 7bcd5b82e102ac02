"""
Error types raised by the MQTT layer and the payload models.
"""
import logging
from typing import Optional, Union

from aiomqtt import MqttError


class TransportError(Exception):
    """
    The single error kind surfaced by the transport session.

    Covers refused connections, rejected credentials, protocol errors and
    operations attempted in the wrong session state. `reason_code` carries
    the broker/library reason code when one is known.
    """

    def __init__(self, message: str, reason_code: Optional[int] = None, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.message = message
        self.reason_code = reason_code
        self.cause = cause

    @classmethod
    def from_mqtt_error(cls, exc: MqttError, context: str = "MQTT error") -> "TransportError":
        # MqttCodeError exposes the paho return code as `rc`
        rc = getattr(exc, "rc", None)
        if rc is not None and not isinstance(rc, int):
            rc = getattr(rc, "value", None)
        error = cls(f"{context}: {exc}", reason_code=rc, cause=exc)
        error.__cause__ = exc
        return error

    def log_details(self, logger: logging.Logger):
        """Logs reason code, message and cause, one line each."""
        logger.error(f"reason {self.reason_code}")
        logger.error(f"msg {self.message}")
        logger.error(f"cause {self.cause!r}")

    def __repr__(self):
        return f"TransportError(message={self.message!r}, reason_code={self.reason_code!r})"


class CommandDecodeError(ValueError):
    """Raised when an inbound payload cannot be decoded into a command."""

    def __init__(self, message: str, payload: Union[bytes, str, None] = None):
        super().__init__(message)
        self.payload = payload


class ConfigError(ValueError):
    """Raised for invalid session configuration values."""
