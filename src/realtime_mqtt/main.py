from __future__ import annotations

import argparse
import asyncio
import logging
import signal
from collections.abc import Mapping, Sequence
from functools import partial
from pathlib import Path
from typing import Any

import dotenv
import uvloop
import yaml

from realtime_mqtt.const import REALTIME_CLIENT_START_TASK_NAME, REALTIME_LOG_NAME, REALTIME_VERSION
from realtime_mqtt.correlation import correlation_context, ensure_correlation_id
from realtime_mqtt.events import WARNING_EVENT, RealtimeEvents
from realtime_mqtt.logging_abstraction import configure_logging, get_logger
from realtime_mqtt.metrics import start_metrics_server
from realtime_mqtt.mqtt.client import RealtimeClient
from realtime_mqtt.mqtt.parsers import EventHandler, JsonParser
from realtime_mqtt.mqtt.topics import Topics
from realtime_mqtt.structs import HandlerProtocol, ParserProtocol, RealtimeEnv

logger = get_logger(__name__)

# Suppress verbose MQTT library warnings
for _name in ("mqtt", "aiomqtt"):
    _mqtt_logger = logging.getLogger(_name)
    _mqtt_logger.setLevel(logging.ERROR)
    _mqtt_logger.propagate = False

DIRECT_MODULE = "direct"
IRIS_MODULE = "iris"


def _enable_debug() -> None:
    get_logger(REALTIME_LOG_NAME).set_level(logging.DEBUG)


def parse_cli(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Realtime MQTT client")
    _ = parser.add_argument(
        "-D",
        "--debug",
        action="store_true",
        help="Enable debug mode",
    )
    _ = parser.add_argument("--env", help="Path to the environment file", default=None, type=Path)
    _ = parser.add_argument(
        "--experiments",
        help="Path to a YAML mapping of experiment parameters",
        default=None,
        type=Path,
    )
    args = parser.parse_args(argv)

    if args.debug:
        _enable_debug()
        logger.info("Debug mode enabled via CLI argument")

    if args.env:
        env_path: Path = args.env.expanduser().resolve()
        if not env_path.exists():
            logger.error(
                "Environment file not found",
                extra={"path": str(env_path)},
            )
        elif dotenv.load_dotenv(env_path, override=True):
            logger.info(
                " Environment variables loaded",
                extra={"source": str(env_path)},
            )
        else:
            logger.warning(
                "No environment variables loaded from file",
                extra={"path": str(env_path)},
            )
    return args


def load_experiments(path: Path | None) -> dict[str, Any]:
    """Read experiment groups from a YAML file; missing or invalid files yield {}."""
    if path is None:
        return {}
    experiments_file = path.expanduser().resolve()
    if not experiments_file.exists():
        logger.warning("Experiments file not found", extra={"path": str(experiments_file)})
        return {}
    try:
        with experiments_file.open() as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError:
        logger.exception("Failed to parse experiments file: %s", experiments_file)
        return {}
    if not isinstance(data, Mapping):
        logger.warning("Experiments file is not a mapping, ignoring", extra={"path": str(experiments_file)})
        return {}
    logger.debug("Loaded %d experiment groups", len(data))
    return dict(data)


def build_client(
    env: RealtimeEnv,
    experiments: Mapping[str, Any],
    events: RealtimeEvents | None = None,
) -> RealtimeClient:
    """Build a client wired with the bundled JSON parsers and event handlers.

    Raises pydantic.ValidationError when the identity variables are missing.
    """
    events = events or RealtimeEvents()
    parsers: dict[str, ParserProtocol] = {
        Topics.SEND_MESSAGE_RESPONSE: JsonParser(DIRECT_MODULE),
        Topics.IRIS_SUB_RESPONSE: JsonParser(IRIS_MODULE),
    }
    handler = EventHandler(events)
    handlers: dict[str, HandlerProtocol] = {DIRECT_MODULE: handler, IRIS_MODULE: handler}
    return RealtimeClient(
        env.device_identity(),
        env.account_identity(),
        experiments=experiments,
        parsers=parsers,
        handlers=handlers,
        env=env,
        events=events,
        profile=env.app_profile(),
    )


class RealtimeRunner:
    """Runs one client on a uvloop event loop until SIGINT/SIGTERM."""

    lp: str = "RealtimeRunner:"

    def __init__(self, client: RealtimeClient, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self.client = client
        if loop is None:
            asyncio.set_event_loop_policy(uvloop.EventLoopPolicy())
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)
        self.loop = loop
        self.stop_event = asyncio.Event()
        self.start_task: asyncio.Task[None] | None = None
        self.loop.add_signal_handler(signal.SIGINT, partial(self.signal_handler, signal.SIGINT))
        self.loop.add_signal_handler(signal.SIGTERM, partial(self.signal_handler, signal.SIGTERM))
        logger.debug("%s Signal handlers configured for SIGINT & SIGTERM", self.lp)

    def signal_handler(self, signum: int) -> None:
        logger.info("%s Intercepted signal: %s (%s)", self.lp, signal.Signals(signum).name, signum)
        self.stop_event.set()

    async def run(self) -> None:
        _ = ensure_correlation_id()
        self.client.events.on(WARNING_EVENT, self._log_warning)
        self.client.start()
        try:
            _ = await self.stop_event.wait()
        finally:
            await self.client.stop()
            logger.info("%s Realtime client stopped", self.lp)

    @staticmethod
    def _log_warning(error: BaseException) -> None:
        logger.warning("Unhandled error in message handler: %s", error)


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point for the realtime client."""
    with correlation_context():
        logger.info(
            "Starting realtime MQTT client",
            extra={"version": REALTIME_VERSION},
        )
        args = parse_cli(argv)
        env = RealtimeEnv().reload()
        debug = args.debug or env.debug
        _ = configure_logging(env.log_format, env.log_json_file, env.log_human_output, debug=debug, force=True)
        if debug:
            logger.info("Debug logging enabled")

        experiments = load_experiments(args.experiments)
        client = build_client(env, experiments)
        for module in (DIRECT_MODULE, IRIS_MODULE):
            client.events.on(module, partial(_log_module_event, module))

        if env.metrics_port:
            start_metrics_server(env.metrics_port)
            logger.info("Metrics server listening", extra={"port": env.metrics_port})

        runner = RealtimeRunner(client)
        try:
            runner.start_task = runner.loop.create_task(runner.run(), name=REALTIME_CLIENT_START_TASK_NAME)
            runner.loop.run_until_complete(runner.start_task)
        except KeyboardInterrupt:
            logger.info("Keyboard interrupt received, shutting down...")
        finally:
            _cancel_pending(runner.loop)
            runner.loop.close()
        return 0


def _log_module_event(module: str, data: Any) -> None:
    logger.info("Received '%s' event", module, extra={"data": data})


def _cancel_pending(loop: asyncio.AbstractEventLoop) -> None:
    """Cancel tasks still scheduled on the loop and wait for them to unwind."""
    pending = [task for task in asyncio.all_tasks(loop) if not task.done()]
    if pending:
        logger.debug("Cancelling %d pending task(s)", len(pending))
        for task in pending:
            _ = task.cancel()
        _ = loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
    loop.run_until_complete(loop.shutdown_asyncgens())


if __name__ == "__main__":
    raise SystemExit(main())
