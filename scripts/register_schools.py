#!/usr/bin/env python
"""
Register schools for the daily meal ingestion.

Reads a CSV file with the columns ``school_code,office_code,school_name,region``
and upserts one school_infos row per line. It will:

1. Wait for the database to accept connections
2. Create missing tables
3. Insert new schools and update the office code, name and region of known ones
4. Optionally run one batch ingestion for today

Run with: python scripts/register_schools.py schools.csv [--ingest]

Environment Variables:
    DATABASE_URL: Database connection string
    LOG_LEVEL: Minimum log level (default: INFO)
    NEIS_API_KEY: Feed API key (needed for --ingest)
"""

import argparse
import asyncio
import csv
import os
import sys
import time
from pathlib import Path

from sqlalchemy import select
from sqlalchemy.orm import Session

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from schoolmeal.database import Base, get_engine, get_session_factory
from schoolmeal.logging_config import configure_logging, get_logger
from schoolmeal.models import SchoolInfo

# Configure logging
configure_logging()
logger = get_logger(__name__)

FIELDS = ("school_code", "office_code", "school_name", "region")


def wait_for_database(max_retries: int = 30, retry_delay: int = 2) -> bool:
    """Wait for the database to be available."""
    logger.info("Waiting for the database to be ready...")

    for attempt in range(max_retries):
        try:
            with get_engine().connect() as conn:
                conn.execute(select(1))
            logger.info("Database is ready")
            return True
        except Exception as e:
            logger.debug(f"Database not ready (attempt {attempt + 1}/{max_retries}): {e}")
            time.sleep(retry_delay)

    logger.error("Database did not become ready in time")
    return False


def read_schools(path: Path) -> list[dict[str, str | None]]:
    """Read school rows from a CSV file, skipping rows without a school code."""
    schools = []
    with path.open(newline="", encoding="utf-8-sig") as f:
        for line_number, row in enumerate(csv.DictReader(f), start=2):
            values = {field: (row.get(field) or "").strip() or None for field in FIELDS}
            if not values["school_code"]:
                logger.warning(f"{path}:{line_number}: no school_code, skipping")
                continue
            schools.append(values)
    return schools


def register_schools(session: Session, schools: list[dict[str, str | None]]) -> dict[str, int]:
    """Insert new schools and refresh known ones."""
    counts = {"inserted": 0, "updated": 0}

    for values in schools:
        existing = session.get(SchoolInfo, values["school_code"])
        if existing is None:
            session.add(SchoolInfo(**values))
            counts["inserted"] += 1
        else:
            for field in FIELDS[1:]:
                if values[field] is not None:
                    setattr(existing, field, values[field])
            counts["updated"] += 1

    session.commit()
    return counts


def main():
    """Entry point for the registration script."""
    parser = argparse.ArgumentParser(description="Register schools for meal ingestion")
    parser.add_argument("csv_path", type=Path, help="CSV file with school rows")
    parser.add_argument(
        "--ingest", action="store_true", help="Run one batch ingestion for today afterwards"
    )
    args = parser.parse_args()

    if not args.csv_path.exists():
        logger.error(f"File not found: {args.csv_path}")
        sys.exit(1)

    if not wait_for_database():
        sys.exit(1)

    Base.metadata.create_all(get_engine())

    schools = read_schools(args.csv_path)
    logger.info(f"Read {len(schools)} schools from {args.csv_path}")

    with get_session_factory()() as session:
        counts = register_schools(session, schools)
    logger.info(f"Registered schools: {counts['inserted']} new, {counts['updated']} updated")

    if args.ingest:
        from schoolmeal.ingest.batch_ingest import run_daily_ingestion

        result = asyncio.run(run_daily_ingestion(trigger_type="manual"))
        logger.info(f"Ingestion finished with status: {result['status']}")


if __name__ == "__main__":
    main()
