from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import String, Integer, ForeignKey, Numeric, DateTime, JSON, CheckConstraint, UniqueConstraint
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class RecordFormat(str, Enum):
    VINYL = "Vinyl"
    CD = "CD"
    CASSETTE = "Cassette"
    DIGITAL = "Digital"


class RecordCategory(str, Enum):
    ROCK = "Rock"
    JAZZ = "Jazz"
    HIP_HOP = "Hip-Hop"
    CLASSICAL = "Classical"
    POP = "Pop"
    ALTERNATIVE = "Alternative"
    INDIE = "Indie"
    ELECTRONIC = "Electronic"


class OrderStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Allowed moves away from each status; staying put is always allowed.
ORDER_TRANSITIONS = {
    OrderStatus.PENDING: {OrderStatus.COMPLETED, OrderStatus.CANCELLED},
    OrderStatus.COMPLETED: set(),
    OrderStatus.CANCELLED: set(),
}


class Base(DeclarativeBase):
    pass


class Record(Base):
    __tablename__ = "records"
    __table_args__ = (
        UniqueConstraint("artist", "album", "format", name="uq_records_artist_album_format"),
        CheckConstraint("qty >= 0", name="ck_records_qty_non_negative"),
        CheckConstraint("price > 0", name="ck_records_price_positive"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    artist: Mapped[str] = mapped_column(String(200), index=True)
    album: Mapped[str] = mapped_column(String(200), index=True)
    format: Mapped[str] = mapped_column(String(20), index=True)
    category: Mapped[str] = mapped_column(String(30), index=True)
    price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    qty: Mapped[int] = mapped_column(Integer, default=0)
    mbid: Mapped[Optional[str]] = mapped_column(String(36), nullable=True)
    track_list: Mapped[list] = mapped_column(JSON, default=list)
    # Bumped on every UPDATE; a writer holding an older value gets StaleDataError
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    __mapper_args__ = {"version_id_col": version}


class Order(Base):
    __tablename__ = "orders"
    __table_args__ = (CheckConstraint("quantity > 0", name="ck_orders_quantity_positive"),)

    id: Mapped[int] = mapped_column(primary_key=True)
    # Reference only; the order outlives the catalog item
    record_id: Mapped[Optional[int]] = mapped_column(
        ForeignKey("records.id", ondelete="SET NULL"), nullable=True, index=True
    )
    quantity: Mapped[int] = mapped_column(Integer)
    total_price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    status: Mapped[str] = mapped_column(String(20), default=OrderStatus.PENDING.value, index=True)
    email: Mapped[str] = mapped_column(String(255), index=True)
    version: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, index=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    record: Mapped[Optional[Record]] = relationship("Record")

    __mapper_args__ = {"version_id_col": version}
