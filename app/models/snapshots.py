"""ORM model for the per-month financial summaries used to answer questions."""
from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional

from sqlalchemy import JSON, BigInteger, Date, DateTime, Integer, SmallInteger, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.sql import func

from .base import Base

_ID_TYPE = BigInteger().with_variant(Integer, "sqlite")


class MonthlySnapshot(Base):
    """One calendar month of P&L figures for a realm.

    ``data`` is a category-keyed map with positive revenues and expenses, e.g.
    ``{"revenue": {"total": 1200.0}, "expenses": {"total": 800.0, "by_account":
    {"Fuel": 500.0}}, "net_income": 400.0}``. ``embedding`` holds an optional
    vector of the month rendered as text.
    """

    __tablename__ = "monthly_snapshot"
    __table_args__ = (
        UniqueConstraint("realm_id", "year", "month", name="uq_monthly_snapshot_realm_month"),
    )

    id: Mapped[int] = mapped_column(_ID_TYPE, primary_key=True, autoincrement=True)
    realm_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    year: Mapped[int] = mapped_column(SmallInteger().with_variant(Integer, "sqlite"), nullable=False)
    month: Mapped[int] = mapped_column(SmallInteger().with_variant(Integer, "sqlite"), nullable=False)
    data: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    embedding: Mapped[Optional[list[float]]] = mapped_column(
        JSON(none_as_null=True), nullable=True
    )
    # Last day included in ``data``; before month end while the month was still running.
    through_date: Mapped[Optional[date]] = mapped_column(Date, nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False
    )

    @property
    def label(self) -> str:
        """Return the ``YYYY-MM`` label of the snapshot month."""

        return f"{self.year:04d}-{self.month:02d}"
