"""Scraping job records."""

from datetime import datetime
from typing import TYPE_CHECKING, List, Optional

from sqlalchemy import DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pricescan.models.base import Base, JSONType, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from pricescan.models.price_result import PriceResultRecord


class ScrapingJobRecord(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Durable copy of a scraping job and its latest progress.

    Rows are created PENDING by the job store and updated from the
    progress payloads the orchestrator emits.
    """

    __tablename__ = "scraping_jobs"

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    supplier_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True, index=True)

    status: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
        default="PENDING",
        index=True,
        comment="Status: PENDING, RUNNING, COMPLETED, FAILED, STOPPED",
    )

    # Job configuration as submitted (sources, batchSize, delayBetweenBatches, ...)
    config: Mapped[dict] = mapped_column(JSONType, nullable=False, default=dict)

    # Counters
    total_products: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    processed_products: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    successful_products: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_products: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # Timing
    started_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)

    error_message: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    results: Mapped[List["PriceResultRecord"]] = relationship(back_populates="job")

    def __repr__(self) -> str:
        return f"<ScrapingJobRecord(id={self.id}, name='{self.name}', status='{self.status}')>"
