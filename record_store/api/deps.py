from typing import Iterator
from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.orm import Session
from shared.core import set_request_context
from record_store.application.orders import OrderService
from record_store.application.records import RecordService
from record_store.domain import messages
from record_store.domain.access import Requester, Role, require_admin
from record_store.infrastructure.auth import decode_access_token

def get_db(request: Request) -> Iterator[Session]:
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()

async def get_requester(request: Request) -> Requester:
    """Bearer token to ``Requester``; runs on the request task so ``user_id`` reaches the log context."""
    auth_header = request.headers.get("Authorization", "")
    if not auth_header.lower().startswith("bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=messages.MISSING_TOKEN,
            headers={"WWW-Authenticate": "Bearer"},
        )
    claims = decode_access_token(auth_header[7:].strip(), settings=request.app.state.settings)
    if not claims or not claims.get("sub"):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=messages.INVALID_TOKEN,
            headers={"WWW-Authenticate": "Bearer"},
        )
    role = Role.ADMIN if claims.get("role") == Role.ADMIN.value else Role.USER
    set_request_context(user_id=claims["sub"])
    request.state.user_id = claims["sub"]
    return Requester(identity=claims["sub"], role=role)

def get_admin(request: Request, requester: Requester = Depends(get_requester)) -> Requester:
    require_admin(requester, request.app.state.policy)
    return requester

def get_order_service(request: Request, db: Session = Depends(get_db)) -> OrderService:
    state = request.app.state
    return OrderService(db, state.cache, policy=state.policy, settings=state.settings)

def get_record_service(request: Request, db: Session = Depends(get_db)) -> RecordService:
    state = request.app.state
    return RecordService(db, state.cache, state.metadata, settings=state.settings)
