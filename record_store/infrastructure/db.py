from functools import lru_cache
from typing import Optional
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from record_store.core_settings import get_settings
from record_store.domain.models import Base

def build_engine(database_url: str) -> Engine:
    connect_args = {}
    if database_url.startswith("sqlite"):
        # Sessions are handed to FastAPI's threadpool workers
        connect_args["check_same_thread"] = False
    return create_engine(database_url, echo=False, future=True, pool_pre_ping=True, connect_args=connect_args)

@lru_cache
def get_engine() -> Engine:
    return build_engine(get_settings().database_url)

def build_session_factory(engine: Optional[Engine] = None) -> sessionmaker:
    return sessionmaker(bind=engine or get_engine(), autoflush=False, autocommit=False, expire_on_commit=False)

def init_models(engine: Optional[Engine] = None) -> None:
    Base.metadata.create_all(engine or get_engine())
