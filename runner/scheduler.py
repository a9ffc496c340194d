import asyncio
import logging
from typing import Awaitable, Callable, Optional

from telegram.ext import Application, ContextTypes, Job

from runner.config import Settings
from yad2_checker.core.errors import CycleFailed
from yad2_checker.core.pipeline import Pipeline
from yad2_checker.models import CycleReport

logger = logging.getLogger(__name__)

CYCLE_JOB = "yad2-cycle"

Cycle = Callable[[], Awaitable[CycleReport]]


async def run_once(pipeline: Pipeline, settings: Settings, stop: Optional[asyncio.Event] = None) -> CycleReport:
    return await pipeline.run_cycle(settings.sources, settings.subscribers, stop)


async def run_guarded(cycle: Cycle) -> Optional[CycleReport]:
    """Run one cycle for the job queue; failures are logged, never raised."""
    try:
        report = await cycle()
    except CycleFailed as e:
        logger.error("Cycle failed: %s (%s)", e, e.report.summary())
        return None
    except Exception:
        logger.exception("Cycle crashed, retrying on the next tick")
        return None
    logger.info("Cycle done: %s", report.summary())
    return report


def schedule_cycle(app: Application, cycle: Cycle, interval_seconds: float) -> Job:
    # Uses PTB JobQueue (install: pip install "python-telegram-bot[job-queue]")
    async def job_callback(context: ContextTypes.DEFAULT_TYPE):
        await run_guarded(cycle)

    return app.job_queue.run_repeating(
        job_callback, interval=interval_seconds, first=0, name=CYCLE_JOB)


async def run_forever(app: Application, cycle: Cycle, interval_seconds: float, stop: asyncio.Event) -> None:
    """Repeat `cycle` on the app's job queue until `stop` is set.

    `app` must already be initialized. Stopping the app waits for a running
    cycle, which itself checks `stop` between sources.
    """
    schedule_cycle(app, cycle, interval_seconds)
    await app.start()
    try:
        await stop.wait()
    finally:
        await app.stop()
    logger.info("Scheduler stopped")
