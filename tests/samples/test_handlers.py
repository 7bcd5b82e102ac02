import json
import pytest

from liveobjects_samples.mqtt.errors import TransportError
from liveobjects_samples.mqtt.session import MQTTSession
from liveobjects_samples.samples.handlers import (
    TOPIC_COMMANDS, TOPIC_FIFO_ALARM, TOPIC_RESPONSES, DeviceCommandHandler, FifoConsumerHandler,
)

"""
Tests for the device command and FIFO consumer handlers, using a mocked session.
"""

@pytest.fixture
def mock_session(mocker):
    """Mocks the session interface the handlers talk to."""
    session = mocker.MagicMock(spec=MQTTSession)
    session.subscribe = mocker.AsyncMock()
    session.publish = mocker.MagicMock()
    return session

def published_responses(session):
    return [json.loads(call.args[1]) for call in session.publish.call_args_list]

def test_command_produces_matching_response():
    handler = DeviceCommandHandler()
    response = handler.handle_command(b'{"cid": "abc", "req": "ping"}')
    assert response.cid == "abc"
    assert response.res["method"] == "ping"
    assert response.res["msg"] == "hello friend!"
    assert response.res["counter"] == 0

def test_counter_increases_by_one_per_command():
    handler = DeviceCommandHandler()
    counters = [handler.handle_command(f'{{"cid": "{i}", "req": "ping"}}'.encode()).res["counter"] for i in range(5)]
    assert counters == [0, 1, 2, 3, 4]
    assert handler.counter == 5

def test_malformed_command_is_dropped(caplog):
    handler = DeviceCommandHandler()
    assert handler.handle_command(b"{not json") is None
    assert handler.counter == 0
    assert handler.dropped == 1
    assert "Dropping malformed command" in caplog.text

@pytest.mark.asyncio
async def test_on_connected_subscribes_to_commands(mock_session):
    handler = DeviceCommandHandler()
    await handler.on_connected(mock_session, reconnect=False)
    mock_session.subscribe.assert_awaited_once_with(TOPIC_COMMANDS)

@pytest.mark.asyncio
async def test_subscribe_failure_is_logged_and_swallowed(mock_session, caplog):
    mock_session.subscribe.side_effect = TransportError("refused", reason_code=128)
    handler = DeviceCommandHandler()
    await handler.on_connected(mock_session, reconnect=False)
    assert "Error during subscription" in caplog.text

@pytest.mark.asyncio
async def test_on_message_publishes_response(mock_session):
    handler = DeviceCommandHandler()
    await handler.on_message(mock_session, TOPIC_COMMANDS, b'{"cid": "abc", "req": "ping"}')

    mock_session.publish.assert_called_once()
    args, kwargs = mock_session.publish.call_args
    assert args[0] == TOPIC_RESPONSES
    assert kwargs == {"qos": 0, "retain": False}
    assert published_responses(mock_session) == [
        {"cid": "abc", "res": {"msg": "hello friend!", "method": "ping", "counter": 0}}
    ]

@pytest.mark.asyncio
async def test_malformed_message_does_not_stop_later_commands(mock_session):
    handler = DeviceCommandHandler()
    await handler.on_message(mock_session, TOPIC_COMMANDS, b"garbage")
    await handler.on_message(mock_session, TOPIC_COMMANDS, b'{"cid": "x", "req": "status"}')

    assert published_responses(mock_session) == [
        {"cid": "x", "res": {"msg": "hello friend!", "method": "status", "counter": 0}}
    ]

@pytest.mark.asyncio
async def test_publish_failure_is_logged(mock_session, caplog):
    mock_session.publish.side_effect = TransportError("Publish queue full")
    handler = DeviceCommandHandler()
    await handler.on_message(mock_session, TOPIC_COMMANDS, b'{"cid": "abc", "req": "ping"}')
    assert "Could not queue response for command abc" in caplog.text

@pytest.mark.asyncio
async def test_fifo_consumer_subscribes_and_counts(mock_session, caplog):
    handler = FifoConsumerHandler()
    await handler.on_connected(mock_session, reconnect=False)
    mock_session.subscribe.assert_awaited_once_with(TOPIC_FIFO_ALARM)

    await handler.on_message(mock_session, TOPIC_FIFO_ALARM, b'{"alarm": "fire"}')
    assert handler.received == 1
    assert "Received message from FIFO queue" in caplog.text
    mock_session.publish.assert_not_called()
