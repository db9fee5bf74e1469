"""SQL-backed reading source over the `air_reads` table.

Recent rows for the same (rounded) coordinates are served from the database;
older or missing rows fall through to an optional upstream source whose
reading is then stored. Works against Postgres in deployment and SQLite in
tests.
"""

from __future__ import annotations

import datetime as dt
import uuid
from typing import List, Mapping, Optional

from sqlalchemy import (
    JSON,
    Column,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    create_engine,
    desc,
    insert,
    select,
)
from sqlalchemy.engine import Engine

from atmowise.data_sources.base import ReadingSource, ReadingUnavailable
from atmowise.domain import PollutantReading, ReadingSourceName
from atmowise.risk_classifier import aqi_category, dominant_pollutant
from utils.logging_utils import get_tagged_logger, mask_db_url

logger = get_tagged_logger(__name__, tag="postgres_data_source")

COORDINATE_PRECISION = 4

metadata = MetaData()

air_reads = Table(
    "air_reads",
    metadata,
    Column("id", String(36), primary_key=True, default=lambda: str(uuid.uuid4())),
    Column("user_id", String(64), nullable=True),
    Column("lat", Float),
    Column("lon", Float),
    Column("source", String(32)),
    Column("timestamp", DateTime(timezone=True)),
    Column("pm25", Float),
    Column("pm10", Float),
    Column("o3", Float),
    Column("no2", Float),
    Column("aqi", Integer),
    Column("raw_payload", JSON),
)


def _to_utc(ts: dt.datetime) -> dt.datetime:
    """Treat naive timestamps (SQLite) as UTC and convert aware ones to UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=dt.timezone.utc)
    return ts.astimezone(dt.timezone.utc)


class SqlReadingSource(ReadingSource):
    """Read recent air readings from SQL, falling through to an upstream source."""

    name = "database"

    def __init__(
        self,
        engine: Engine,
        *,
        upstream: Optional[ReadingSource] = None,
        max_age_minutes: int = 30,
    ) -> None:
        """Bind to a database engine and an optional upstream for misses."""
        self.engine = engine
        self.upstream = upstream
        self.max_age_minutes = max_age_minutes

    @classmethod
    def from_url(cls, database_url: str, **kwargs) -> "SqlReadingSource":
        """Create an engine from a URL, make sure the table exists, and build the source."""
        logger.info("Connecting reading database", extra={"db_url": mask_db_url(database_url)})
        engine = create_engine(database_url, future=True)
        source = cls(engine, **kwargs)
        source.ensure_schema()
        return source

    def ensure_schema(self) -> None:
        """Create the air_reads table if it is missing."""
        metadata.create_all(self.engine, tables=[air_reads])

    @staticmethod
    def _round(value: float) -> float:
        return round(float(value), COORDINATE_PRECISION)

    @staticmethod
    def _row_to_reading(row: Mapping) -> PollutantReading:
        """Convert a result row into a PollutantReading."""
        source = row.get("source")
        try:
            source_name = ReadingSourceName(source) if source else ReadingSourceName.DATABASE
        except ValueError:
            source_name = ReadingSourceName.DATABASE
        reading = PollutantReading(
            pm25=row.get("pm25"),
            pm10=row.get("pm10"),
            o3=row.get("o3"),
            no2=row.get("no2"),
            aqi=row.get("aqi"),
            timestamp=_to_utc(row["timestamp"]),
            source=source_name,
            latitude=row.get("lat"),
            longitude=row.get("lon"),
        )
        return reading.model_copy(
            update={
                "category": aqi_category(reading.aqi),
                "dominant_pollutant": dominant_pollutant(reading),
            }
        )

    def recent_reading(self, latitude: float, longitude: float) -> Optional[PollutantReading]:
        """Most recent row for the coordinates newer than `max_age_minutes`, if any."""
        cutoff = dt.datetime.now(dt.timezone.utc) - dt.timedelta(minutes=self.max_age_minutes)
        query = (
            select(air_reads)
            .where(air_reads.c.lat == self._round(latitude))
            .where(air_reads.c.lon == self._round(longitude))
            .where(air_reads.c.timestamp > cutoff)
            .order_by(desc(air_reads.c.timestamp))
            .limit(1)
        )
        logger.debug(f"Executing recent reading query for location ({latitude},{longitude})")
        with self.engine.connect() as conn:
            row = conn.execute(query).mappings().first()
        if not row:
            return None
        return self._row_to_reading(row)

    def history(self, latitude: float, longitude: float, *, days: int = 7, limit: int = 500) -> List[PollutantReading]:
        """Readings stored for the coordinates over the last `days`, oldest first."""
        cutoff = dt.datetime.now(dt.timezone.utc) - dt.timedelta(days=days)
        query = (
            select(air_reads)
            .where(air_reads.c.lat == self._round(latitude))
            .where(air_reads.c.lon == self._round(longitude))
            .where(air_reads.c.timestamp >= cutoff)
            .order_by(air_reads.c.timestamp)
            .limit(limit)
        )
        with self.engine.connect() as conn:
            rows = conn.execute(query).mappings().all()
        return [self._row_to_reading(row) for row in rows]

    def store_reading(
        self,
        reading: PollutantReading,
        *,
        latitude: Optional[float] = None,
        longitude: Optional[float] = None,
        user_id: Optional[str] = None,
    ) -> str:
        """Insert a reading and return the new row id."""
        lat = latitude if latitude is not None else reading.latitude
        lon = longitude if longitude is not None else reading.longitude
        if lat is None or lon is None:
            raise ValueError("Coordinates are required to store a reading")
        row_id = str(uuid.uuid4())
        values = {
            "id": row_id,
            "user_id": user_id,
            "lat": self._round(lat),
            "lon": self._round(lon),
            "source": reading.source.value if reading.source else ReadingSourceName.DATABASE.value,
            "timestamp": _to_utc(reading.timestamp),
            "pm25": reading.pm25,
            "pm10": reading.pm10,
            "o3": reading.o3,
            "no2": reading.no2,
            "aqi": reading.aqi,
            "raw_payload": reading.model_dump(mode="json"),
        }
        with self.engine.begin() as conn:
            conn.execute(insert(air_reads).values(**values))
        logger.debug("Stored air reading", extra={"id": row_id, "source": values["source"]})
        return row_id

    def fetch_reading(self, latitude: float, longitude: float) -> PollutantReading:
        """Serve a recent stored reading or fetch, store and return an upstream one."""
        recent = self.recent_reading(latitude, longitude)
        if recent is not None:
            return recent
        if self.upstream is None:
            raise ReadingUnavailable("No recent air quality data found")
        reading = self.upstream.fetch_reading(latitude, longitude)
        try:
            self.store_reading(reading, latitude=latitude, longitude=longitude)
        except Exception as exc:
            logger.error("Failed to store air reading: %s", exc)
        return reading
