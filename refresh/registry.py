"""
Source registry and tenant resolution.

Sources are registered by administrators (see scripts/import_sources.py) and
are only read by refresh cycles.
"""

import pandas as pd
from typing import List, Dict, Any, Optional, Callable
from pathlib import Path
from uuid import UUID
from sqlalchemy import select, and_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from models.hotel import Company, Hotel
from models.source import ScrapeSource
from schemas.refresh import SourceInfo
from core.exceptions import SourceRegistryError
import logging

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ["hotel_id", "provider", "source_locator"]


class SourceRegistry:
    """Read access to registered sources and their owning company"""

    def __init__(self, session_factory: Callable[[], AsyncSession]):
        self.session_factory = session_factory

    async def list_sources(self, provider: Optional[str] = None) -> List[SourceInfo]:
        """
        Return sources in registration order.

        Raises:
            SourceRegistryError: If the sources cannot be read
        """
        query = select(ScrapeSource).order_by(ScrapeSource.created_at, ScrapeSource.id)
        if provider:
            query = query.where(ScrapeSource.provider == provider)

        try:
            async with self.session_factory() as session:
                result = await session.execute(query)
                rows = result.scalars().all()
        except SQLAlchemyError as e:
            raise SourceRegistryError(
                "Failed to read registered sources",
                context={"provider": provider},
                original_exception=e
            )

        sources = [
            SourceInfo(
                source_id=row.id,
                hotel_id=row.hotel_id,
                user_id=row.user_id,
                provider=row.provider,
                locator=row.source_locator,
            )
            for row in rows
        ]
        logger.info(f"Loaded {len(sources)} sources" + (f" for {provider}" if provider else ""))
        return sources

    async def resolve_company(self, hotel_id: UUID) -> Optional[UUID]:
        """Company owning the hotel, or None when the hotel or company is unknown"""
        async with self.session_factory() as session:
            result = await session.execute(
                select(Company.id)
                .join(Hotel, Hotel.company_id == Company.id)
                .where(Hotel.id == hotel_id)
            )
            return result.scalar_one_or_none()


def load_sources_csv(file_path: str) -> List[Dict[str, Any]]:
    """
    Read source registrations from a CSV file.

    Expected columns: hotel_id, provider, source_locator and optionally
    user_id. Rows with a missing required value are skipped.

    Raises:
        SourceRegistryError: If the file is missing or lacks required columns
    """
    path = Path(file_path)
    if not path.exists():
        raise SourceRegistryError(f"CSV file not found: {path}", context={"file_path": str(path)})

    logger.info(f"Reading sources from {path}")
    df = pd.read_csv(path, dtype=str)

    # Normalize column names (strip whitespace, lowercase)
    df.columns = df.columns.str.strip().str.lower().str.replace(' ', '_')

    missing = [column for column in REQUIRED_COLUMNS if column not in df.columns]
    if missing:
        raise SourceRegistryError(
            f"CSV is missing columns: {', '.join(missing)}",
            context={"file_path": str(path), "columns": list(df.columns)}
        )

    rows = []
    for index, record in enumerate(df.to_dict(orient="records")):
        if any(pd.isna(record.get(column)) or not str(record[column]).strip() for column in REQUIRED_COLUMNS):
            logger.warning(f"Skipping CSV row {index + 1}: missing required value")
            continue

        user_id = record.get("user_id")
        try:
            rows.append({
                "hotel_id": UUID(str(record["hotel_id"]).strip()),
                "user_id": None if user_id is None or pd.isna(user_id) else UUID(str(user_id).strip()),
                "provider": str(record["provider"]).strip(),
                "source_locator": str(record["source_locator"]).strip(),
            })
        except ValueError as e:
            logger.warning(f"Skipping CSV row {index + 1}: {e}")

    logger.info(f"Read {len(rows)} source rows from CSV")
    return rows


async def register_sources(session: AsyncSession, rows: List[Dict[str, Any]]) -> int:
    """
    Insert source rows that are not registered yet.

    A row is a duplicate when a source with the same hotel, provider and
    locator exists. Returns the number of sources created.
    """
    created = 0
    seen = set()
    for row in rows:
        key = (row["hotel_id"], row["provider"], row["source_locator"])
        if key in seen:
            continue
        seen.add(key)

        existing = await session.execute(
            select(ScrapeSource.id).where(
                and_(
                    ScrapeSource.hotel_id == row["hotel_id"],
                    ScrapeSource.provider == row["provider"],
                    ScrapeSource.source_locator == row["source_locator"],
                )
            )
        )
        if existing.scalar_one_or_none() is not None:
            continue

        session.add(ScrapeSource(**row))
        created += 1

    await session.commit()
    logger.info(f"Registered {created} new sources ({len(rows) - created} already present)")
    return created
