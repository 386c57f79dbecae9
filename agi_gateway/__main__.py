"""Entry point: ``python -m agi_gateway``."""

import asyncio
import signal
from concurrent.futures import ThreadPoolExecutor

from agi_gateway.agi.dispatcher import AgiCallDispatcher
from agi_gateway.agi.server import AgiServer
from agi_gateway.config import load_config, validate_config
from agi_gateway.core.call_registry import CallRegistry
from agi_gateway.core.events import EventBus
from agi_gateway.logging_config import configure_logging, get_logger

logger = get_logger(__name__)


async def main():
    config = load_config()
    configure_logging(log_level=config.logging.level.upper())

    errors, warnings = validate_config(config)
    if errors:
        logger.error("Configuration validation failed", errors=errors, warnings=warnings)
        raise RuntimeError(f"Configuration errors: {errors}")
    if warnings:
        logger.warning("Configuration warnings", warnings=warnings)

    registry = CallRegistry()
    executor = ThreadPoolExecutor(max_workers=config.agi.dialplan_workers, thread_name_prefix="dialplan")
    dispatcher = AgiCallDispatcher(registry, events=EventBus(), executor=executor)
    server = AgiServer(config.agi.host, config.agi.port, handler=dispatcher, registry=registry)

    shutdown_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, shutdown_event.set)

    await server.start()
    await shutdown_event.wait()

    await server.stop()
    registry.clear()
    executor.shutdown(wait=False)


def run():
    try:
        asyncio.run(main())
    except (KeyboardInterrupt, SystemExit):
        pass
    finally:
        logger.info("AGI gateway has shut down.")


if __name__ == "__main__":
    run()
