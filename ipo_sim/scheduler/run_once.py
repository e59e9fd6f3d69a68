import sys
import logging
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from ipo_sim.config import Config
from ipo_sim.engine.service import IPOService
from ipo_sim.scheduler.run import run_rotation, run_sweep

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)


def main():
    service = IPOService.from_config(Config())
    run_rotation(service)
    run_sweep(service)


if __name__ == "__main__":
    main()
