"""
Pytest Configuration and Fixtures for the liveobjects_samples project.

This module provides an in-memory stand-in for `aiomqtt.Client` so that
sessions, handlers and drivers can be tested without a broker.
"""

import asyncio
import sys
from typing import List, Optional
from unittest.mock import patch

import pytest
import logging
from aiomqtt import MqttError

from liveobjects_samples.mqtt.config_loader import SessionConfig

# --- In-memory MQTT client ---

class FakeMessage:
    def __init__(self, topic: str, payload: bytes):
        self.topic = topic
        self.payload = payload

class FakeMQTTClient:
    """Mimics the parts of aiomqtt.Client the session uses."""
    def __init__(self, broker: "FakeBroker", hostname: str, port: int = 1883, **kwargs):
        self.broker = broker
        self.hostname = hostname
        self.port = port
        self.kwargs = kwargs
        self.connected = False
        self.subscribed: List[tuple] = []
        self.published: List[dict] = []
        self._inbox: asyncio.Queue = asyncio.Queue()

    async def __aenter__(self):
        if self.broker.connect_delay:
            await asyncio.sleep(self.broker.connect_delay)
        if self.broker.connect_errors:
            raise self.broker.connect_errors.pop(0)
        self.connected = True
        return self

    async def __aexit__(self, *exc_info):
        self.connected = False
        return None

    async def subscribe(self, topic: str, qos: int = 0):
        if not self.connected:
            raise MqttError("Operation timed out / not connected")
        if topic in self.broker.subscribe_errors:
            raise MqttError(f"Subscription to {topic} refused")
        self.subscribed.append((topic, qos))

    async def publish(self, topic: str, payload=None, qos: int = 0, retain: bool = False):
        if not self.connected:
            raise MqttError("Disconnected during publish")
        if self.broker.publish_delay:
            await asyncio.sleep(self.broker.publish_delay)
        self.published.append({"topic": topic, "payload": payload, "qos": qos, "retain": retain})

    @property
    def messages(self):
        return self._iter_messages()

    async def _iter_messages(self):
        while True:
            item = await self._inbox.get()
            if isinstance(item, BaseException):
                raise item
            yield item

    # Test helpers
    def deliver(self, topic: str, payload: bytes):
        self._inbox.put_nowait(FakeMessage(topic, payload))

    def drop(self):
        self._inbox.put_nowait(MqttError("Connection lost"))

class FakeBroker:
    """Creates FakeMQTTClients and remembers them, oldest first."""
    def __init__(self):
        self.clients: List[FakeMQTTClient] = []
        self.connect_errors: List[BaseException] = []
        self.subscribe_errors: set = set()
        self.publish_delay: float = 0.0
        self.connect_delay: float = 0.0

    def __call__(self, hostname, port=1883, **kwargs) -> FakeMQTTClient:
        client = FakeMQTTClient(self, hostname, port, **kwargs)
        self.clients.append(client)
        return client

    @property
    def client(self) -> Optional[FakeMQTTClient]:
        return self.clients[-1] if self.clients else None

    @property
    def published(self) -> List[dict]:
        return [message for client in self.clients for message in client.published]

@pytest.fixture
def fake_broker():
    """Patches the session's MQTT client class with an in-memory fake."""
    broker = FakeBroker()
    with patch('liveobjects_samples.mqtt.session.MQTTClient', broker):
        yield broker

@pytest.fixture
def session_config():
    """A device-mode config pointing at a local broker, with fast reconnects."""
    return SessionConfig(
        server="tcp://localhost:1883",
        client_id="urn:lo:nsid:sensor:test",
        username="json+device",
        api_key="test-key",
        reconnect_delay=0.01,
        drain_timeout=0.5,
    )

@pytest.fixture(scope="session", autouse=True)
def setup_test_logging():
    """
    Configures the Python logging framework globally for all tests.
    Because tests bypass main.py, this ensures our logs are formatted
    and visible exactly how we want them during test runs.
    """
    formatter = logging.Formatter(fmt="%(levelname)-8s %(message)s - %(funcName)s:%(lineno)d ")
    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(formatter)
    logger = logging.getLogger()
    logger.setLevel(logging.DEBUG)
    logger.addHandler(handler)
