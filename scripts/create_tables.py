"""Create the profiles / customdomains tables directly (SQLite dev setups; Postgres uses alembic)."""
import logging

import app.models  # noqa: F401  registers the models on Base.metadata
from app.db.base_class import Base
from app.db.session import engine

logger = logging.getLogger("linkbio.scripts.create_tables")


def create_tables() -> None:
    Base.metadata.create_all(bind=engine)
    logger.info("Created tables: %s", ", ".join(sorted(Base.metadata.tables)))


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    create_tables()
