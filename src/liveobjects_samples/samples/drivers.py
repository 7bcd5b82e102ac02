"""
Sample Drivers.

Each driver opens one session, lets its handler do the work and closes
the session again:
- `run_device_command_sample`: connect, answer commands for a fixed dwell, disconnect.
- `run_fifo_consumer_sample`: connect, consume until asked to stop, disconnect.
"""
import asyncio
import logging
from typing import Optional

from liveobjects_samples.mqtt.config_loader import SessionConfig
from liveobjects_samples.mqtt.errors import TransportError
from liveobjects_samples.mqtt.session import MQTTSession
from liveobjects_samples.samples.handlers import DeviceCommandHandler, FifoConsumerHandler, SessionHandler

logger = logging.getLogger(__name__)

DEFAULT_DWELL = 10.0

async def wait_for_stop(session: MQTTSession, stop_event: asyncio.Event, timeout: Optional[float] = None):
    """
    Blocks until `stop_event` is set, the session ends on its own,
    or `timeout` seconds have passed, whichever comes first.
    """
    stop_task = asyncio.create_task(stop_event.wait())
    closed_task = asyncio.create_task(session.wait_closed())
    try:
        await asyncio.wait({stop_task, closed_task}, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in (stop_task, closed_task):
            task.cancel()
        await asyncio.gather(stop_task, closed_task, return_exceptions=True)

async def run_session(config: SessionConfig, handler: SessionHandler, stop_event: asyncio.Event, timeout: Optional[float] = None) -> int:
    """
    Connect, wait, disconnect. Returns the process exit status:
    0 on a normal run, 1 when the connection could not be established.
    """
    session = MQTTSession(config, handler)
    try:
        await session.connect()
    except TransportError as e:
        logger.error(f"Could not connect to {config.server}")
        e.log_details(logger)
        return 1

    try:
        await wait_for_stop(session, stop_event, timeout=timeout)
    finally:
        await session.disconnect()
    return 0

async def run_device_command_sample(config: SessionConfig, dwell: float = DEFAULT_DWELL, stop_event: Optional[asyncio.Event] = None, handler: Optional[DeviceCommandHandler] = None) -> int:
    """Device connects, handles commands for `dwell` seconds, then disconnects."""
    handler = handler or DeviceCommandHandler()
    return await run_session(config, handler, stop_event or asyncio.Event(), timeout=dwell)

async def run_fifo_consumer_sample(config: SessionConfig, stop_event: asyncio.Event, handler: Optional[FifoConsumerHandler] = None) -> int:
    """Application connects and consumes the FIFO until `stop_event` is set."""
    handler = handler or FifoConsumerHandler()
    status = await run_session(config, handler, stop_event)
    logger.info(f"Consumed {handler.received} message(s) from '{handler.fifo_topic}'")
    return status
