"""Command-line entry point: ``python -m launchpad_tracker``."""

from __future__ import annotations

import asyncio
import logging
import signal
import sys

from launchpad_tracker.config import Settings, get_settings
from launchpad_tracker.pipeline import Pipeline
from launchpad_tracker.retry import RetryExhaustedError

logger = logging.getLogger("launchpad_tracker")


async def _run(settings: Settings) -> None:
    pipeline = Pipeline(settings)
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        # Not available on Windows event loops
        try:
            loop.add_signal_handler(sig, pipeline.request_stop)
        except NotImplementedError:
            logger.debug("Signal handler for %s unavailable", sig.name)
    await pipeline.run()


def main() -> int:
    settings = get_settings()
    logging.basicConfig(
        level=settings.get_logging_level(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    logger.info("Starting launchpad tracker with %s", settings.redacted_summary())

    try:
        asyncio.run(_run(settings))
    except RetryExhaustedError as e:
        logger.error("Exiting: %s", e)
        return 1
    except KeyboardInterrupt:
        pass
    return 0


if __name__ == "__main__":
    sys.exit(main())
