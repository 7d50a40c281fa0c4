"""Price observations produced by scraping jobs."""

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional

from sqlalchemy import Boolean, DateTime, Float, ForeignKey, Index, Numeric, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pricescan.models.base import Base, TimestampMixin, UUIDPrimaryKeyMixin

if TYPE_CHECKING:
    from pricescan.models.scraping_job import ScrapingJobRecord


class PriceResultRecord(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """One retained price observation for a catalog product.

    Append-only: rows are never updated after insert. They outlive the
    job that produced them, so the job link is nulled on job deletion.
    """

    __tablename__ = "price_scraping_results"
    __table_args__ = (
        Index("ix_price_results_product_scraped", "normalized_product_id", "scraped_at"),
    )

    job_id: Mapped[Optional[str]] = mapped_column(
        ForeignKey("scraping_jobs.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )
    normalized_product_id: Mapped[str] = mapped_column(String(64), nullable=False)
    source_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    product_title: Mapped[str] = mapped_column(Text, nullable=False)
    merchant: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    url: Mapped[str] = mapped_column(Text, nullable=False, default="")

    price: Mapped[Decimal] = mapped_column(Numeric(12, 2), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="EUR")
    price_incl_vat: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    shipping_cost: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    availability: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    confidence_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    is_lowest_price: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    scraped_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    # Original listing price when it was converted from another currency
    source_price: Mapped[Optional[Decimal]] = mapped_column(Numeric(12, 2), nullable=True)
    source_currency: Mapped[Optional[str]] = mapped_column(String(3), nullable=True)

    job: Mapped[Optional["ScrapingJobRecord"]] = relationship(back_populates="results")

    def __repr__(self) -> str:
        return (
            f"<PriceResultRecord(product={self.normalized_product_id}, source={self.source_id}, "
            f"price={self.price}, lowest={self.is_lowest_price})>"
        )
