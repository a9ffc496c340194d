import argparse
import asyncio
import logging
import signal
import sys
from typing import Optional, Sequence

from telegram.error import InvalidToken, TelegramError
from telegram.ext import Application

from runner.config import Settings, load_settings
from runner.scheduler import run_forever, run_once
from yad2_checker.bot.telegram_bot import TelegramNotifier
from yad2_checker.core.errors import ConfigError, CycleFailed, StoreFault
from yad2_checker.core.pipeline import Pipeline
from yad2_checker.core.storage import open_store
from yad2_checker.suppliers.router import build_router

logger = logging.getLogger("runner")

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_CONFIG = 2


def parse_args(argv: Optional[Sequence[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        prog="yad2-checker",
        description="Poll Yad2 searches and send new listings to Telegram.",
    )
    parser.add_argument("--once", action="store_true",
                        help="run a single cycle and exit (for cron / CI)")
    parser.add_argument("--interval", type=float, default=None, metavar="SECONDS",
                        help="seconds between cycles (default: CHECK_INTERVAL_SECONDS or 60)")
    return parser.parse_args(argv)


def build_application(token: str) -> Application:
    # no updater: subscribers come from configuration, there are no commands to poll for
    return Application.builder().token(token).updater(None).build()


async def run(settings: Settings, once: bool, interval: float,
              stop: Optional[asyncio.Event] = None) -> int:
    try:
        store = open_store(settings.store_uri)
    except ValueError as e:
        raise ConfigError(str(e)) from e

    supplier = build_router(
        api_url=settings.api_url,
        legacy_api_url=settings.legacy_api_url,
        timeout=settings.request_timeout_seconds,
        delay=settings.request_delay_seconds,
        proxy=settings.proxy_url,
    )

    # Graceful shutdown signals
    if stop is None:
        stop = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop.set)
        except NotImplementedError:
            # no loop signal handlers on Windows; Ctrl+C still interrupts
            pass

    application = build_application(settings.telegram_token)
    try:
        async with application:
            pipeline = Pipeline(supplier, store, TelegramNotifier(application.bot))

            async def cycle():
                return await run_once(pipeline, settings, stop)

            if once:
                try:
                    report = await cycle()
                except CycleFailed as e:
                    logger.error("Cycle failed: %s (%s)", e, e.report.summary())
                    return EXIT_FAILED
                logger.info("Done: %s", report.summary())
                return EXIT_OK

            logger.info("Checking %d sources every %gs for %d subscribers. Ctrl+C to stop.",
                        len(settings.sources), interval, len(settings.subscribers))
            await run_forever(application, cycle, interval, stop)
            return EXIT_OK
    finally:
        store.close()


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = parse_args(argv)
    try:
        settings = load_settings()
    except ConfigError as e:
        logging.basicConfig(level=logging.INFO)
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    # httpx logs every Bot API request at INFO, token included in the URL
    logging.getLogger("httpx").setLevel(logging.WARNING)

    interval = args.interval if args.interval is not None else settings.check_interval_seconds
    try:
        return asyncio.run(run(settings, once=args.once, interval=interval))
    except ConfigError as e:
        logger.error("Configuration error: %s", e)
        return EXIT_CONFIG
    except InvalidToken as e:
        logger.error("Telegram rejected the bot token: %s", e)
        return EXIT_CONFIG
    except StoreFault as e:
        logger.error("Listing store unavailable: %s", e)
        return EXIT_FAILED
    except TelegramError as e:
        logger.error("Cannot reach Telegram: %s", e)
        return EXIT_FAILED


if __name__ == "__main__":
    sys.exit(main())
