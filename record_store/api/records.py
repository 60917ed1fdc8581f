from typing import Literal, Optional
from fastapi import APIRouter, Depends, Query
from record_store.api.deps import get_admin, get_record_service
from record_store.api.responses import ApiResponse
from record_store.application.records import RecordService
from record_store.application.schemas import (
    MAX_PAGE_SIZE, RecordCreate, RecordFilter, RecordPage, RecordRead, RecordSortField, RecordUpdate,
)
from record_store.domain import messages
from record_store.domain.access import Requester
from record_store.domain.models import RecordCategory, RecordFormat

router = APIRouter(prefix="/records", tags=["records"])

@router.get("/", response_model=ApiResponse[RecordPage])
def list_records(
    q: Optional[str] = None,
    artist: Optional[str] = None,
    album: Optional[str] = None,
    format: Optional[RecordFormat] = None,
    category: Optional[RecordCategory] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=MAX_PAGE_SIZE),
    sort_by: RecordSortField = "artist",
    sort_direction: Literal["asc", "desc"] = "asc",
    service: RecordService = Depends(get_record_service),
):
    """Search the catalog; ``q`` matches artist, album or category."""
    filters = RecordFilter(
        q=q, artist=artist, album=album, format=format, category=category,
        page=page, limit=limit, sort_by=sort_by, sort_direction=sort_direction,
    )
    return ApiResponse[RecordPage](status=200, message=messages.RECORDS_RETRIEVED, data=service.list(filters))

@router.get("/{record_id}", response_model=ApiResponse[RecordRead])
def get_record(record_id: int, service: RecordService = Depends(get_record_service)):
    return ApiResponse[RecordRead](status=200, message=messages.RECORD_RETRIEVED, data=service.get(record_id))

@router.post("/", response_model=ApiResponse[RecordRead], status_code=201)
def create_record(
    payload: RecordCreate,
    _: Requester = Depends(get_admin),
    service: RecordService = Depends(get_record_service),
):
    return ApiResponse[RecordRead](status=201, message=messages.RECORD_CREATED, data=service.create(payload))

@router.put("/{record_id}", response_model=ApiResponse[RecordRead])
def update_record(
    record_id: int,
    payload: RecordUpdate,
    _: Requester = Depends(get_admin),
    service: RecordService = Depends(get_record_service),
):
    return ApiResponse[RecordRead](status=200, message=messages.RECORD_UPDATED, data=service.update(record_id, payload))

@router.delete("/{record_id}", response_model=ApiResponse)
def delete_record(
    record_id: int,
    _: Requester = Depends(get_admin),
    service: RecordService = Depends(get_record_service),
):
    service.delete(record_id)
    return ApiResponse(status=200, message=messages.RECORD_DELETED)
