"""
Main entry point for the Live Objects MQTT samples.

This module is responsible for:
- Parsing command-line arguments and selecting the sample to run.
- Loading configuration (from a YAML file, the command line and the environment).
- Configuring logging.
- Turning SIGINT/SIGTERM into a graceful stop of the running sample.
"""

import argparse
import asyncio
import contextlib
import logging
import os
import signal
import sys

from typing import Dict, Any, List, Optional

from liveobjects_samples.mqtt.config_loader import SessionConfig, application_defaults, device_defaults, load_config
from liveobjects_samples.mqtt.errors import ConfigError
from liveobjects_samples.samples.drivers import DEFAULT_DWELL, run_device_command_sample, run_fifo_consumer_sample

API_KEY_ENV = "LO_API_KEY"

def setup_logging(level: str = "INFO"):
    """
    Configures the global logging settings for the entire application.
    This should be called as early as possible during startup.
    """
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s [%(levelname)-8s] %(name)s.%(funcName)s: %(message)s'
    )

logger = logging.getLogger(__name__)

def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="liveobjects-samples", description="Live Objects MQTT samples")
    parser.add_argument("--config", default="config.yaml", help="YAML config file (default: %(default)s)")
    parser.add_argument("--api-key", default=None, help=f"API key, overrides the config file and ${API_KEY_ENV}")
    parser.add_argument("--log-level", default="INFO", help="Logging level (default: %(default)s)")

    sub = parser.add_subparsers(dest="sample", required=True)
    device = sub.add_parser("device-command", help="Connect as a device and answer commands on dev/cmd")
    device.add_argument("--dwell", type=float, default=DEFAULT_DWELL, help="Seconds to stay connected (default: %(default)s)")
    sub.add_parser("fifo-consumer", help="Connect as an application and consume the 'alarm' FIFO")
    return parser

def resolve_config(sample: str, config: Dict[str, Any], api_key: Optional[str] = None) -> SessionConfig:
    """
    Builds the session config for `sample`: built-in defaults, overlaid by the
    config file section, overlaid by the API key from the command line or environment.
    """
    if sample == "device-command":
        session_config = SessionConfig.from_dict(config.get("device"), device_defaults())
    else:
        session_config = SessionConfig.from_dict(config.get("fifo"), application_defaults())

    api_key = api_key or os.environ.get(API_KEY_ENV)
    if api_key:
        session_config = SessionConfig.from_dict({"api_key": api_key}, session_config)
    return session_config

async def main_application_runner(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)

    try:
        session_config = resolve_config(args.sample, load_config(args.config), args.api_key)
    except ConfigError as e:
        logger.error(f"Invalid configuration: {e}")
        return 2

    # Setup Signal Handlers for OS interrupts
    stop_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        with contextlib.suppress(NotImplementedError): # not available on Windows
            loop.add_signal_handler(sig, stop_event.set)

    logger.info(f"Starting sample '{args.sample}' as {session_config.client_id}")
    if args.sample == "device-command":
        return await run_device_command_sample(session_config, dwell=args.dwell, stop_event=stop_event)
    return await run_fifo_consumer_sample(session_config, stop_event)

def main(argv: Optional[List[str]] = None) -> int:
    try:
        return asyncio.run(main_application_runner(argv))
    except KeyboardInterrupt:
        # Handled by the signal handler, but good to catch here just in case.
        return 0

if __name__ == "__main__":
    sys.exit(main())
