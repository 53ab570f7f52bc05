# seed_flavors.py
"""Seed the database with the built-in flavors."""

import logging

from bundle_engine.domain.flavor import FlavorManager
from bundle_engine.infrastructure.sql.database import get_engine, init_db
from bundle_engine.infrastructure.sql.repository import SqlResourceRepository

logger = logging.getLogger(__name__)


def main():
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    init_db(get_engine())
    manager = FlavorManager(SqlResourceRepository())

    for flavor in manager.seed_defaults():
        logger.info(f"flavor {flavor.name}: min nodes {flavor.minimum_nodes}, anti-affinity {flavor.anti_affinity}")

    logger.info(f"available flavors: {[flavor.name for flavor in manager.list()]}")


if __name__ == "__main__":
    main()
