"""
Session Signal Handlers.

This module is responsible for:
- Defining the signals a session delivers (connected, connection lost,
  message arrived, delivery complete).
- Handling device commands received on `dev/cmd` and replying on `dev/cmd/res`.
- Logging messages consumed from a FIFO queue.
"""
import logging

from liveobjects_samples.mqtt.errors import CommandDecodeError, TransportError
from liveobjects_samples.mqtt.models import DeviceCommand, DeviceCommandResponse

logger = logging.getLogger(__name__)

TOPIC_COMMANDS = "dev/cmd"
TOPIC_RESPONSES = "dev/cmd/res"
TOPIC_FIFO_ALARM = "fifo/alarm"


class SessionHandler:
    """
    Base handler: every signal is a no-op apart from logging.
    Subclasses override the signals they care about.
    """
    async def on_connected(self, session, reconnect: bool):
        logger.info("Connection is established" + (" (reconnect)" if reconnect else ""))

    async def on_connection_lost(self, session, error: TransportError):
        logger.warning(f"Connection lost, reason {error.reason_code}: {error.cause}")

    async def on_message(self, session, topic: str, payload: bytes):
        logger.info(f"Received message on '{topic}' - {payload!r}")

    async def on_delivery_complete(self, session, message):
        pass

    async def _subscribe(self, session, topic_filter: str):
        # Subscribe errors are reported, not raised: the session stays up.
        try:
            await session.subscribe(topic_filter)
        except TransportError as e:
            logger.error("Error during subscription")
            e.log_details(logger)
            return False
        logger.info("Subscribed")
        return True


class DeviceCommandHandler(SessionHandler):
    """
    Handles messages as JSON device commands and immediately responds.

    Responses are numbered by a per-handler counter starting at 0. The session
    dispatches messages one at a time from a single task, so the counter is
    never advanced concurrently.
    """
    def __init__(self, command_topic: str = TOPIC_COMMANDS, response_topic: str = TOPIC_RESPONSES):
        self.command_topic = command_topic
        self.response_topic = response_topic
        self.counter = 0
        self.dropped = 0

    async def on_connected(self, session, reconnect: bool):
        await super().on_connected(session, reconnect)
        logger.info("Awaiting for commands...")
        await self._subscribe(session, self.command_topic)

    async def on_message(self, session, topic: str, payload: bytes):
        logger.info(f"Received message (i.e. command) - {payload!r}")

        response = self.handle_command(payload)
        if response is None:
            return

        try:
            session.publish(self.response_topic, response.to_bytes(), qos=0, retain=False)
        except TransportError as e:
            logger.error(f"Could not queue response for command {response.cid}")
            e.log_details(logger)

    def handle_command(self, payload: bytes):
        """
        Decodes `payload` and builds the response.
        Malformed commands are logged and dropped (returns None, counter unchanged).
        """
        try:
            command = DeviceCommand.from_payload(payload)
        except CommandDecodeError as e:
            self.dropped += 1
            logger.warning(f"Dropping malformed command: {e}")
            return None

        logger.info(f"received command: {command}")
        response = DeviceCommandResponse.for_command(command, self.counter)
        self.counter += 1
        return response

    async def on_delivery_complete(self, session, message):
        logger.info("Message delivered")


class FifoConsumerHandler(SessionHandler):
    """Prints messages consumed from a FIFO queue."""
    def __init__(self, fifo_topic: str = TOPIC_FIFO_ALARM):
        self.fifo_topic = fifo_topic
        self.received = 0

    async def on_connected(self, session, reconnect: bool):
        await super().on_connected(session, reconnect)
        logger.info(f"Consuming from Router with filter '{self.fifo_topic}'...")
        await self._subscribe(session, self.fifo_topic)

    async def on_message(self, session, topic: str, payload: bytes):
        self.received += 1
        logger.info(f"Received message from FIFO queue - {payload!r}")
