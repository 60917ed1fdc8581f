from pydantic import BaseModel, Field
from datetime import datetime
from decimal import Decimal
from math import ceil
from typing import Literal, Optional
from record_store.domain.models import OrderStatus, RecordCategory, RecordFormat

MAX_PAGE_SIZE = 100
RecordSortField = Literal["artist", "album", "price", "qty", "created_at", "format", "category"]

class Track(BaseModel):
    title: str = Field(min_length=1)
    duration: str
    position: int = Field(ge=1)

class RecordCreate(BaseModel):
    artist: str = Field(min_length=1, max_length=200)
    album: str = Field(min_length=1, max_length=200)
    price: Decimal = Field(gt=0)
    qty: int = Field(ge=0)
    format: RecordFormat
    category: RecordCategory
    mbid: Optional[str] = Field(default=None, max_length=36)
    track_list: list[Track] = Field(default_factory=list)

class RecordUpdate(BaseModel):
    artist: Optional[str] = Field(default=None, min_length=1, max_length=200)
    album: Optional[str] = Field(default=None, min_length=1, max_length=200)
    price: Optional[Decimal] = Field(default=None, gt=0)
    qty: Optional[int] = Field(default=None, ge=0)
    format: Optional[RecordFormat] = None
    category: Optional[RecordCategory] = None
    mbid: Optional[str] = Field(default=None, max_length=36)
    track_list: Optional[list[Track]] = None

class RecordRead(BaseModel):
    id: int
    artist: str
    album: str
    price: float
    qty: int
    format: RecordFormat
    category: RecordCategory
    mbid: Optional[str] = None
    track_list: list[Track] = []
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    class Config:
        from_attributes = True

class RecordFilter(BaseModel):
    q: Optional[str] = None
    artist: Optional[str] = None
    album: Optional[str] = None
    format: Optional[RecordFormat] = None
    category: Optional[RecordCategory] = None
    page: int = Field(default=1, ge=1)
    limit: int = Field(default=10, ge=1, le=MAX_PAGE_SIZE)
    sort_by: RecordSortField = "artist"
    sort_direction: Literal["asc", "desc"] = "asc"

class RecordSummary(BaseModel):
    """Read-only view of the ordered record embedded in order payloads."""
    id: int
    artist: str
    album: str
    format: RecordFormat
    price: float
    class Config:
        from_attributes = True

class OrderCreate(BaseModel):
    record_id: int
    quantity: int = Field(ge=1)
    # Honoured only for admins placing an order on someone's behalf
    email: Optional[str] = Field(default=None, max_length=255)

class OrderUpdate(BaseModel):
    quantity: Optional[int] = Field(default=None, ge=1)
    status: Optional[OrderStatus] = None
    class Config:
        extra = "forbid"

class OrderRead(BaseModel):
    id: int
    record_id: Optional[int] = None
    quantity: int
    total_price: float
    status: OrderStatus
    email: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    record: Optional[RecordSummary] = None
    class Config:
        from_attributes = True

class PageMeta(BaseModel):
    total_items: int
    item_count: int
    items_per_page: int
    total_pages: int
    current_page: int

    @classmethod
    def build(cls, total_items: int, item_count: int, page: int, limit: int) -> "PageMeta":
        return cls(
            total_items=total_items,
            item_count=item_count,
            items_per_page=limit,
            total_pages=ceil(total_items / limit) if limit else 0,
            current_page=page,
        )

class RecordPage(BaseModel):
    items: list[RecordRead]
    meta: PageMeta

class OrderPage(BaseModel):
    items: list[OrderRead]
    meta: PageMeta
