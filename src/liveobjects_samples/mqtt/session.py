"""
MQTT Transport Session.

This module is responsible for:
- Configuring and opening the `aiomqtt` client connection (credentials,
  keep-alive, clean session, TLS for `ssl://` endpoints).
- Reconnecting automatically when the connection drops after a successful connect.
- Delivering the session signals (connected, connection lost, message,
  delivery complete) to a single registered handler.
- Publishing through one bounded outbound queue drained by a single task,
  so a slow publish never blocks inbound message dispatch.
"""
import asyncio
import contextlib
import logging
import ssl
from enum import Enum
from typing import List, Optional, Union

from aiomqtt import Client as MQTTClient, MqttError, ProtocolVersion

from liveobjects_samples.mqtt.config_loader import SessionConfig
from liveobjects_samples.mqtt.errors import TransportError
from liveobjects_samples.mqtt.models import OutboundMessage

logger = logging.getLogger(__name__)

class SessionState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTING = "disconnecting"

class MQTTSession:
    """
    One MQTT connection to the platform, plus the signal plumbing around it.

    `handler` must provide the async signal methods of
    `liveobjects_samples.samples.handlers.SessionHandler`.
    """
    config: SessionConfig
    state: SessionState
    subscriptions: List[str]
    _client: Optional[MQTTClient]
    _outbound: asyncio.Queue
    _main_task: Optional[asyncio.Task]
    _connected_once: Optional[asyncio.Future]
    _has_connected: bool

    def __init__(self, config: SessionConfig, handler):
        self.config = config
        self.handler = handler
        self.state = SessionState.DISCONNECTED
        self.subscriptions = []

        # Internal state
        self._client = None
        self._outbound = asyncio.Queue(maxsize=config.publish_queue_size)
        self._main_task = None
        self._connected_once = None
        self._has_connected = False

    @property
    def is_connected(self) -> bool:
        return self.state is SessionState.CONNECTED

    def _make_client(self) -> MQTTClient:
        tls_context = ssl.create_default_context() if self.config.use_tls else None
        return MQTTClient(
            self.config.host,
            self.config.port,
            identifier=self.config.client_id,
            username=self.config.username,
            password=self.config.api_key,
            keepalive=self.config.keep_alive,
            clean_session=self.config.clean_session,
            protocol=ProtocolVersion.V311,
            tls_context=tls_context,
        )

    async def connect(self):
        """
        Opens the connection and waits until the broker accepts it.

        The initial connect is not retried: a failure raises TransportError
        and leaves the session DISCONNECTED.
        """
        if self.state is not SessionState.DISCONNECTED:
            raise TransportError(f"Cannot connect while {self.state.value}")

        logger.info(f"Connecting to broker: {self.config.server}")
        self.state = SessionState.CONNECTING
        self._connected_once = asyncio.get_running_loop().create_future()
        self._main_task = asyncio.create_task(self._main_loop())

        try:
            await self._connected_once
        except TransportError:
            await self._main_task
            self._main_task = None
            raise
        except asyncio.CancelledError:
            self._main_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._main_task
            self._main_task = None
            self.state = SessionState.DISCONNECTED
            raise
        logger.info("Connected")

    async def disconnect(self):
        """
        Flushes pending publishes (bounded by `drain_timeout`), then closes the connection.
        """
        if self._main_task is None:
            return

        self.state = SessionState.DISCONNECTING
        if self._client is not None:
            try:
                await asyncio.wait_for(self._outbound.join(), timeout=self.config.drain_timeout)
            except asyncio.TimeoutError:
                logger.warning(f"{self._outbound.qsize()} message(s) still queued at disconnect, dropping them")

        self._main_task.cancel()
        try:
            await self._main_task
        except asyncio.CancelledError:
            pass
        self._main_task = None
        self._outbound = asyncio.Queue(maxsize=self.config.publish_queue_size)
        self._has_connected = False
        self.state = SessionState.DISCONNECTED
        logger.info("Disconnected")

    async def wait_closed(self):
        """Returns once the session has ended on its own (connection lost without auto-reconnect)."""
        if self._main_task is not None:
            await asyncio.shield(self._main_task)

    async def subscribe(self, topic_filter: str, qos: int = 0):
        """
        Subscribes to `topic_filter`. Only valid once the session is connected,
        i.e. from the handler's `on_connected` signal or later.
        """
        if self.state is not SessionState.CONNECTED or self._client is None:
            raise TransportError(f"Cannot subscribe to '{topic_filter}' while {self.state.value}")
        try:
            await self._client.subscribe(topic_filter, qos=qos)
        except MqttError as e:
            raise TransportError.from_mqtt_error(e, f"Subscribe to '{topic_filter}' failed") from e
        if topic_filter not in self.subscriptions:
            self.subscriptions.append(topic_filter)
        logger.debug(f"Subscribed to '{topic_filter}' (qos={qos})")

    def publish(self, topic: str, payload: Union[bytes, str], qos: int = 0, retain: bool = False) -> OutboundMessage:
        """
        Queues a message for the publisher task and returns immediately.

        Messages queued while reconnecting go out once the connection is back.
        Before the first successful connect, or once the session is closed,
        publishing raises TransportError, as does a full queue.
        """
        reconnecting = self.state is SessionState.CONNECTING and self._has_connected
        if self.state is not SessionState.CONNECTED and not reconnecting:
            raise TransportError(f"Cannot publish to '{topic}' while {self.state.value}")
        if isinstance(payload, str):
            payload = payload.encode('utf-8')

        message = OutboundMessage(topic=topic, payload=payload, qos=qos, retain=retain)
        try:
            self._outbound.put_nowait(message)
        except asyncio.QueueFull:
            raise TransportError(f"Publish queue full ({self._outbound.maxsize}), cannot publish to '{topic}'")
        logger.debug(f"Request to publish on '{topic}': {payload!r}")
        return message

    async def _main_loop(self):
        """
        The persistent connection loop.
        The connection is only valid inside the `async with` block.
        """
        reconnect = False
        while True:
            entered = False
            try:
                async with self._make_client() as client:
                    entered = True
                    self._client = client
                    self._has_connected = True
                    self.state = SessionState.CONNECTED
                    if not self._connected_once.done():
                        self._connected_once.set_result(None)
                    logger.debug(f"Session up on {self.config.host}:{self.config.port}")

                    await self._signal("on_connected", self, reconnect)
                    await self._run_connection(client)

            except asyncio.CancelledError:
                raise # Let the disconnect() method handle this
            except MqttError as e:
                if not self._connected_once.done():
                    self.state = SessionState.DISCONNECTED
                    self._connected_once.set_exception(TransportError.from_mqtt_error(e, "Connection failed"))
                    return

                self._client = None
                if entered:
                    # Failed reconnect attempts are not reported as a connection loss.
                    await self._signal("on_connection_lost", self, TransportError.from_mqtt_error(e, "Connection dropped"))
                else:
                    logger.warning(f"Reconnect attempt failed: {e}")

                if not self.config.auto_reconnect:
                    self.state = SessionState.DISCONNECTED
                    return
                self.state = SessionState.CONNECTING
                reconnect = True
                logger.info(f"Reconnecting in {self.config.reconnect_delay}s...")
                await asyncio.sleep(self.config.reconnect_delay)
            finally:
                self._client = None

    async def _run_connection(self, client: MQTTClient):
        """Runs the publisher task next to the inbound message loop."""
        publisher = asyncio.create_task(self._publisher_loop(client))
        try:
            async for message in client.messages:
                await self._signal("on_message", self, str(message.topic), message.payload)
        finally:
            publisher.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await publisher

    async def _publisher_loop(self, client: MQTTClient):
        """The background worker that pushes queued messages to the broker."""
        while True:
            message: OutboundMessage = await self._outbound.get()
            try:
                await client.publish(**message.to_aiomqtt_args())
            except MqttError as e:
                TransportError.from_mqtt_error(e, f"Publish to '{message.topic}' failed").log_details(logger)
            else:
                logger.debug(f"Published to '{message.topic}'")
                await self._signal("on_delivery_complete", self, message)
            finally:
                self._outbound.task_done()

    async def _signal(self, name: str, *args):
        # A failing handler must not take the connection down with it.
        try:
            await getattr(self.handler, name)(*args)
        except asyncio.CancelledError:
            raise
        except Exception:
            logger.exception(f"Handler {type(self.handler).__name__}.{name} failed")
