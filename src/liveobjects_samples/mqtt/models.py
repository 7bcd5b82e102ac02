"""
Data Models for Device Commands and MQTT Payloads.

Defines the command received on the device command topic, the
response published back to the platform, and the envelope the
session uses to hand messages to `aiomqtt`.
"""
from dataclasses import dataclass, field, asdict
import json
from typing import Any, Dict, Union

from liveobjects_samples.mqtt.errors import CommandDecodeError

GREETING = "hello friend!"

# --- Payload helpers ---

def _decode_json_object(payload: Union[bytes, str]) -> Dict[str, Any]:
    """Parses a UTF-8 JSON payload that must contain an object."""
    try:
        text = payload.decode('utf-8') if isinstance(payload, (bytes, bytearray)) else payload
        data = json.loads(text)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise CommandDecodeError(f"payload is not valid JSON: {e}", payload) from e

    if not isinstance(data, dict):
        raise CommandDecodeError(f"expected a JSON object, got {type(data).__name__}", payload)
    return data

def _require_str(data: Dict[str, Any], key: str, payload: Union[bytes, str]) -> str:
    value = data.get(key)
    if not isinstance(value, str):
        raise CommandDecodeError(f"missing or invalid field '{key}'", payload)
    return value

def _require_cid(data: Dict[str, Any], payload: Union[bytes, str]) -> Union[str, int]:
    # Live Objects commands usually carry an integer cid; it is echoed back as-is.
    value = data.get('cid')
    if isinstance(value, bool) or not isinstance(value, (str, int)):
        raise CommandDecodeError("missing or invalid field 'cid'", payload)
    return value

# --- The "Letters" ---

@dataclass(frozen=True, kw_only=True)
class DeviceCommand:
    """
    A command sent by the platform to a device.

    `cid` is the correlation id echoed in the response and `req` the
    request (method) name. Command arguments, when present, live under `arg`.
    """
    cid: Union[str, int]
    req: str
    arg: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Union[bytes, str]) -> "DeviceCommand":
        """Decodes a raw MQTT payload. Raises CommandDecodeError if it is not a command."""
        data = _decode_json_object(payload)
        cid = _require_cid(data, payload)
        req = _require_str(data, 'req', payload)
        arg = data.get('arg') or {}
        if not isinstance(arg, dict):
            raise CommandDecodeError("field 'arg' must be an object", payload)
        return cls(cid=cid, req=req, arg=arg)

@dataclass(frozen=True, kw_only=True)
class DeviceCommandResponse:
    """Response to a DeviceCommand. `cid` always equals the command's cid."""
    cid: Union[str, int]
    res: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def for_command(cls, command: DeviceCommand, counter: int) -> "DeviceCommandResponse":
        return cls(
            cid=command.cid,
            res={"msg": GREETING, "method": command.req, "counter": counter},
        )

    @classmethod
    def from_payload(cls, payload: Union[bytes, str]) -> "DeviceCommandResponse":
        data = _decode_json_object(payload)
        cid = _require_cid(data, payload)
        res = data.get('res', {})
        if not isinstance(res, dict):
            raise CommandDecodeError("field 'res' must be an object", payload)
        return cls(cid=cid, res=res)

    def to_json(self) -> str:
        """Converts the object to a JSON string with a stable key order."""
        return json.dumps(asdict(self), sort_keys=True)

    def to_bytes(self) -> bytes:
        """Converts the object to UTF-8 encoded bytes for MQTT."""
        return self.to_json().encode('utf-8')

# --- The "Envelope" (The MQTT Context) ---

@dataclass(frozen=True)
class OutboundMessage:
    """
    A message waiting in the session's publish queue.

    Field names follow `aiomqtt.Client.publish` so the envelope can be
    spread straight into it.
    """
    topic: str
    payload: bytes
    qos: int = 0
    retain: bool = False

    def to_aiomqtt_args(self) -> Dict[str, Any]:
        """Returns dict suitable for client.publish(**args)"""
        return {
            "topic": self.topic,
            "payload": self.payload,
            "qos": self.qos,
            "retain": self.retain,
        }
