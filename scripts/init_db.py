"""Create the pipeline tables (status, history, users, subscriptions, notifications)."""

from sqlmodel import SQLModel

from app.core.logging_config import get_logger
from app.db import DATABASE_URL, create_db_and_tables
import app.models  # noqa: F401 registers every table on SQLModel.metadata

logger = get_logger("init_db")


def main() -> int:
    tables = sorted(SQLModel.metadata.tables)
    logger.info("creating_tables", database=DATABASE_URL.split("@")[-1], tables=tables)
    try:
        create_db_and_tables()
    except Exception as e:
        logger.error("create_tables_failed", error=str(e))
        return 1
    logger.info("tables_ready", count=len(tables))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
