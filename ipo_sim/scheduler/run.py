import sys
import time
import schedule
import logging
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from ipo_sim.config import Config
from ipo_sim.engine.clock import DEFAULT_TIMEZONE
from ipo_sim.engine.service import IPOService

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

logger = logging.getLogger(__name__)


def run_rotation(service: IPOService):
    """Read the pool once so the day's rotation happens even without traffic."""
    try:
        logger.info("=" * 60)
        logger.info("Starting scheduled IPO rotation...")
        logger.info("=" * 60)
        snapshot = service.rotate()
        logger.info(
            f"Rotation completed for {snapshot.as_of}: "
            f"{len(snapshot.open)} open, {len(snapshot.upcoming)} upcoming, {len(snapshot.closed)} closed"
        )
    except Exception as e:
        logger.error(f"Error in scheduled IPO rotation: {e}", exc_info=True)


def run_sweep(service: IPOService):
    """Advance every pending application timeline that has come due."""
    try:
        service.process_due()
    except Exception as e:
        logger.error(f"Error sweeping IPO applications: {e}", exc_info=True)


def register_jobs(service: IPOService, config: Config):
    scheduler_config = config.get_scheduler()
    rotation_time = scheduler_config.get("rotation_time", "09:15")
    sweep_minutes = scheduler_config.get("sweep_minutes", 1)
    timezone = config.get_simulation().get("timezone", DEFAULT_TIMEZONE)

    # Rotation runs at the market's local time, not the host's.
    schedule.every().day.at(rotation_time, timezone).do(run_rotation, service)
    schedule.every(sweep_minutes).minutes.do(run_sweep, service)
    return schedule.jobs


def main():
    """Main scheduler function."""
    config = Config()
    service = IPOService.from_config(config)
    logger.info("IPO simulation scheduler started")

    run_rotation(service)
    for job in register_jobs(service, config):
        logger.info(f"  - {job} (next run {job.next_run})")

    while True:
        schedule.run_pending()
        time.sleep(1)


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        logger.info("Scheduler stopped by user")
    except Exception as e:
        logger.error(f"Scheduler error: {e}", exc_info=True)
