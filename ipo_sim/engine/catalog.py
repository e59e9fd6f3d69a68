import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

import yaml

from ipo_sim.engine.models import IPO

logger = logging.getLogger(__name__)

DEFAULT_CATALOG_PATH = Path(__file__).parent / "catalog.yaml"


@dataclass
class Catalog:
    open: List[IPO] = field(default_factory=list)
    upcoming: List[IPO] = field(default_factory=list)
    closed: List[IPO] = field(default_factory=list)


def load_catalog(path: Optional[str] = None) -> Catalog:
    """Read the seed IPO pools from YAML."""
    catalog_path = Path(path) if path else DEFAULT_CATALOG_PATH
    with open(catalog_path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}

    catalog = Catalog(
        open=[IPO.from_dict(item) for item in data.get("open") or []],
        upcoming=[IPO.from_dict(item) for item in data.get("upcoming") or []],
        closed=[IPO.from_dict(item) for item in data.get("closed") or []],
    )
    logger.info(
        f"Loaded catalog {catalog_path.name}: {len(catalog.open)} open, "
        f"{len(catalog.upcoming)} upcoming, {len(catalog.closed)} closed"
    )
    return catalog
