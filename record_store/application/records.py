from typing import Any, Dict, List, Optional
from enum import Enum
from sqlalchemy import func, or_, select, update
from sqlalchemy.orm import Session
from shared.core import get_logger
from record_store.core_settings import Settings, get_settings
from record_store.domain import messages
from record_store.domain.exceptions import BadRequestError, ConflictError, InternalError, NotFoundError
from record_store.domain.models import Order, OrderStatus, Record
from record_store.infrastructure.cache import (
    ORDERS_DETAIL, ORDERS_LIST, RECORDS_DETAIL, RECORDS_LIST,
    CacheInvalidator, CacheOptions, CacheStore, detail_key, list_pattern, read_through,
)
from record_store.infrastructure.musicbrainz import MetadataLookup, MetadataLookupError, is_valid_mbid
from .schemas import PageMeta, RecordCreate, RecordFilter, RecordPage, RecordRead, RecordUpdate, Track
from .unit_of_work import run_atomically

logger = get_logger(__name__)

IDENTITY_FIELDS = ("artist", "album", "format")


def _column_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class RecordService:
    """Catalog management: duplicate guard, metadata enrichment and cached reads."""

    def __init__(self, db: Session, cache: CacheStore, metadata: MetadataLookup, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.db = db
        self.cache = cache
        self.metadata = metadata
        self.invalidator = CacheInvalidator(cache)
        self.retry_attempts = settings.STOCK_RETRY_ATTEMPTS
        self.list_cache = CacheOptions(RECORDS_LIST, settings.CACHE_TTL_RECORDS_LIST)
        self.detail_cache = CacheOptions(RECORDS_DETAIL, settings.CACHE_TTL_RECORDS_DETAIL)

    def list(self, filters: RecordFilter, cache_options: Optional[CacheOptions] = None) -> RecordPage:
        def load():
            stmt = select(Record)
            if filters.q:
                stmt = stmt.where(or_(
                    Record.artist.icontains(filters.q, autoescape=True),
                    Record.album.icontains(filters.q, autoescape=True),
                    Record.category.icontains(filters.q, autoescape=True),
                ))
            if filters.artist:
                stmt = stmt.where(Record.artist.icontains(filters.artist, autoescape=True))
            if filters.album:
                stmt = stmt.where(Record.album.icontains(filters.album, autoescape=True))
            if filters.format:
                stmt = stmt.where(Record.format == filters.format.value)
            if filters.category:
                stmt = stmt.where(Record.category == filters.category.value)

            total = self.db.scalar(select(func.count()).select_from(stmt.subquery()))
            stmt = stmt.execution_options(populate_existing=True)
            column = getattr(Record, filters.sort_by)
            ordering = column.desc() if filters.sort_direction == "desc" else column.asc()
            records = self.db.scalars(
                stmt.order_by(ordering, Record.id.asc())
                .offset((filters.page - 1) * filters.limit)
                .limit(filters.limit)
            ).all()
            result = RecordPage(
                items=[RecordRead.model_validate(r) for r in records],
                meta=PageMeta.build(total, len(records), filters.page, filters.limit),
            )
            return result.model_dump(mode="json")

        params = filters.model_dump(mode="json")
        return RecordPage.model_validate(read_through(self.cache, cache_options or self.list_cache, params, load))

    def get(self, record_id: int, cache_options: Optional[CacheOptions] = None) -> RecordRead:
        def load():
            return RecordRead.model_validate(self._get_or_404(record_id)).model_dump(mode="json")

        return RecordRead.model_validate(
            read_through(self.cache, cache_options or self.detail_cache, {"id": record_id}, load)
        )

    def create(self, data: RecordCreate) -> RecordRead:
        self._ensure_unique(data.artist, data.album, data.format.value, messages.DUPLICATE_RECORD)
        values = {key: _column_value(value) for key, value in data.model_dump().items()}
        if data.mbid:
            values["track_list"] = self._fetch_track_list(data.mbid)

        def unit() -> Record:
            record = Record(**values)
            self.db.add(record)
            return record

        record = run_atomically(
            self.db, unit, 1, "record creation",
            on_integrity_error=lambda e: self._duplicate(values, messages.DUPLICATE_RECORD),
        )
        logger.info(
            f"Record {record.id} created: {record.artist} - {record.album} ({record.format})",
            extra={"extra_fields": {"record_id": record.id, "mbid": record.mbid}},
        )
        self.invalidator.invalidate(list_pattern(RECORDS_LIST))
        return RecordRead.model_validate(record)

    def update(self, record_id: int, data: RecordUpdate) -> RecordRead:
        patch = {key: _column_value(value) for key, value in data.model_dump(exclude_unset=True, exclude_none=True).items()}
        current = self._get_or_404(record_id)

        if "mbid" in patch and patch["mbid"] != current.mbid:
            patch["track_list"] = self._fetch_track_list(patch["mbid"])

        if any(field in patch for field in IDENTITY_FIELDS):
            identity = {field: patch.get(field, getattr(current, field)) for field in IDENTITY_FIELDS}
            self._ensure_unique(
                identity["artist"], identity["album"], identity["format"],
                messages.UPDATE_DUPLICATE_RECORD, exclude_id=record_id,
            )
        else:
            identity = {field: getattr(current, field) for field in IDENTITY_FIELDS}

        def unit() -> Record:
            record = self._lock(record_id)
            for key, value in patch.items():
                setattr(record, key, value)
            return record

        record = run_atomically(
            self.db, unit, self.retry_attempts, "record update",
            on_integrity_error=lambda e: self._duplicate(identity, messages.UPDATE_DUPLICATE_RECORD),
        )
        logger.info(f"Record {record_id} updated", extra={"extra_fields": {"record_id": record_id, "fields": sorted(patch)}})
        self.invalidator.invalidate(
            list_pattern(RECORDS_LIST),
            detail_key(RECORDS_DETAIL, record_id),
            list_pattern(ORDERS_LIST),
            list_pattern(ORDERS_DETAIL),
        )
        return RecordRead.model_validate(record)

    def delete(self, record_id: int) -> None:
        """Remove a catalog item nobody is waiting on.

        Pending orders block the delete; completed and cancelled orders keep
        their history with a null record reference.
        """
        def unit() -> None:
            record = self._lock(record_id)
            pending = self.db.scalar(
                select(func.count()).select_from(Order)
                .where(Order.record_id == record_id, Order.status == OrderStatus.PENDING.value)
            )
            if pending:
                raise ConflictError(
                    messages.record_has_pending_orders(record_id, pending),
                    record_id=record_id, pending_orders=pending,
                )
            self.db.execute(update(Order).where(Order.record_id == record_id).values(record_id=None))
            self.db.delete(record)

        run_atomically(self.db, unit, self.retry_attempts, "record removal")
        logger.info(f"Record {record_id} deleted", extra={"extra_fields": {"record_id": record_id}})
        self.invalidator.invalidate(
            list_pattern(RECORDS_LIST),
            detail_key(RECORDS_DETAIL, record_id),
            list_pattern(ORDERS_LIST),
            list_pattern(ORDERS_DETAIL),
        )

    def _get_or_404(self, record_id: int) -> Record:
        record = self.db.get(Record, record_id, populate_existing=True)
        if record is None:
            raise NotFoundError(messages.record_not_found(record_id), record_id=record_id)
        return record

    def _lock(self, record_id: int) -> Record:
        record = self.db.scalars(
            select(Record).where(Record.id == record_id).with_for_update().execution_options(populate_existing=True)
        ).first()
        if record is None:
            raise NotFoundError(messages.record_not_found(record_id), record_id=record_id)
        return record

    def _ensure_unique(self, artist: str, album: str, format: str, message: str, exclude_id: Optional[int] = None) -> None:
        stmt = select(Record.id).where(Record.artist == artist, Record.album == album, Record.format == format)
        if exclude_id is not None:
            stmt = stmt.where(Record.id != exclude_id)
        if self.db.scalar(stmt.limit(1)) is not None:
            raise self._duplicate({"artist": artist, "album": album, "format": format}, message)

    @staticmethod
    def _duplicate(values: Dict[str, Any], message: str) -> ConflictError:
        return ConflictError(message, **{field: values[field] for field in IDENTITY_FIELDS})

    def _fetch_track_list(self, mbid: str) -> List[Dict[str, Any]]:
        if not is_valid_mbid(mbid):
            raise BadRequestError(messages.invalid_mbid(mbid), mbid=mbid)
        try:
            tracks = self.metadata.fetch_track_list(mbid)
        except MetadataLookupError as e:
            logger.error(f"Track list lookup failed for {mbid}: {e}")
            raise InternalError(f"{messages.MUSICBRAINZ_FETCH_ERROR} {mbid}: {e}", mbid=mbid) from e
        if not tracks:
            raise BadRequestError(messages.mbid_not_found(mbid), mbid=mbid)
        return [Track.model_validate(track).model_dump() for track in tracks]
