from __future__ import annotations

import argparse
import asyncio
import logging
import os
import signal
from collections.abc import Sequence
from pathlib import Path

import dotenv
import uvloop
from pydantic import ValidationError

from vto_bridge.const import SUPERVISOR_TASK_NAME, VTO_DEBUG, VTO_VERSION, YES_ANSWER
from vto_bridge.device_info import DeviceInfoClient
from vto_bridge.logging_abstraction import get_logger, reconfigure_logging
from vto_bridge.metrics import start_metrics_server
from vto_bridge.protocol.exceptions import AuthenticationRejected, DeviceInfoError
from vto_bridge.structs import ENV_FIELDS, BridgeSettings
from vto_bridge.transport.supervisor import VTOSupervisor

logger = get_logger(__name__)

# Suppress verbose MQTT library warnings
mqtt_logger = logging.getLogger("mqtt")
mqtt_logger.setLevel(logging.ERROR)
mqtt_logger.propagate = False

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_AUTH_REJECTED = EXIT_FAILURE
EXIT_CONFIG_ERROR = 2


def parse_cli(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="vto-bridge", description="Dahua VTO to MQTT bridge")
    _ = parser.add_argument(
        "-D",
        "--debug",
        action="store_true",
        help="Enable debug mode",
    )
    _ = parser.add_argument("--env", help="Path to the environment file", default=None, type=Path)
    _ = parser.add_argument(
        "--snapshot",
        metavar="DIR",
        default=None,
        type=Path,
        help="Save one snapshot from the door station into DIR and exit",
    )
    return parser.parse_args(argv)


def load_env_file(env_file: Path) -> bool:
    """Load ``env_file`` into the process environment, overriding existing values."""
    env_path = env_file.expanduser().resolve()
    if not env_path.exists():
        logger.error("Environment file not found", extra={"path": str(env_path)})
        return False
    if not dotenv.load_dotenv(env_path, override=True):
        logger.warning("No environment variables loaded from file", extra={"path": str(env_path)})
        return False
    logger.info(" Environment variables loaded", extra={"source": str(env_path)})
    return True


def load_settings() -> BridgeSettings | None:
    """Validate the environment; log every problem and return None if invalid."""
    try:
        return BridgeSettings.from_env()
    except ValidationError as e:
        for err in e.errors():
            field = str(err["loc"][0]) if err["loc"] else "?"
            logger.error(
                "Invalid configuration: %s %s",
                ENV_FIELDS.get(field, field),
                err["msg"],
                extra={"field": field},
            )
        return None


def set_debug() -> None:
    """Switch every vto_bridge logger and its handlers to DEBUG."""
    for name, obj in logging.root.manager.loggerDict.items():
        if name.startswith("vto_bridge") and isinstance(obj, logging.Logger):
            obj.setLevel(logging.DEBUG)
            for handler in obj.handlers:
                handler.setLevel(logging.DEBUG)


async def take_snapshot(settings: BridgeSettings, directory: Path) -> Path:
    client = DeviceInfoClient(settings.vto_host, settings.credentials)
    try:
        return await client.save_snapshot(directory)
    finally:
        await client.close()


class VTOBridge:
    """Owns the event loop, signal handlers and the supervisor."""

    lp: str = "VTOBridge:"

    def __init__(self, settings: BridgeSettings) -> None:
        self.settings = settings
        self.loop: asyncio.AbstractEventLoop = uvloop.new_event_loop()
        asyncio.set_event_loop(self.loop)
        self.supervisor = VTOSupervisor(settings)

        logger.info(
            " Initializing VTO bridge",
            extra={"version": VTO_VERSION, "host": settings.vto_host, "topic_prefix": settings.topic_prefix},
        )
        self.loop.add_signal_handler(signal.SIGINT, self.signal_handler, signal.SIGINT)
        self.loop.add_signal_handler(signal.SIGTERM, self.signal_handler, signal.SIGTERM)
        logger.debug("Signal handlers configured for SIGINT & SIGTERM")

    def signal_handler(self, signum: int) -> None:
        logger.info("%s Intercepted signal: %s (%s)", self.lp, signal.Signals(signum).name, signum)
        self.supervisor.stop()

    def run(self) -> int:
        if self.settings.metrics_port > 0:
            start_metrics_server(self.settings.metrics_port)
            logger.info(" Metrics server started", extra={"port": self.settings.metrics_port})
        try:
            task = self.loop.create_task(self.supervisor.run_forever(), name=SUPERVISOR_TASK_NAME)
            self.loop.run_until_complete(task)
        except AuthenticationRejected as e:
            logger.error(" Stopping: %s", e)
            return EXIT_AUTH_REJECTED
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received, shutting down...")
        else:
            logger.info(" VTO bridge stopped gracefully")
        finally:
            self.loop.close()
        return EXIT_OK


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point for the VTO bridge."""
    logger.info("Starting VTO bridge", extra={"version": VTO_VERSION})
    args = parse_cli(argv)
    if args.env and load_env_file(args.env):
        reconfigure_logging()

    if args.debug:
        set_debug()
        logger.info("Debug mode enabled via CLI argument")
    elif VTO_DEBUG or os.environ.get("VTO_DEBUG", "0").casefold() in YES_ANSWER:
        set_debug()
        logger.info("Debug logging enabled via configuration")

    settings = load_settings()
    if settings is None:
        return EXIT_CONFIG_ERROR

    if args.snapshot is not None:
        try:
            path = asyncio.run(take_snapshot(settings, args.snapshot))
        except DeviceInfoError as e:
            logger.error("Snapshot failed: %s", e)
            return EXIT_FAILURE
        logger.info("Snapshot written", extra={"path": str(path)})
        return EXIT_OK

    return VTOBridge(settings).run()
