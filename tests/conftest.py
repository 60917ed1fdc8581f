from decimal import Decimal
import pytest
from sqlalchemy.orm import sessionmaker

from record_store.application.orders import OrderService
from record_store.application.records import RecordService
from record_store.core_settings import Settings
from record_store.domain.access import Requester, Role
from record_store.domain.models import Record, RecordCategory, RecordFormat
from record_store.infrastructure.cache import CacheStore
from record_store.infrastructure.db import build_engine, init_models
from support import FakeMetadataLookup


@pytest.fixture
def settings(tmp_path):
    return Settings(
        DATABASE_URL=f"sqlite:///{tmp_path / 'records.db'}",
        REDIS_URL=None,
        JWT_SECRET="record-store-test-secret-0123456789abcdef",
        STOCK_RETRY_ATTEMPTS=5,
    )


@pytest.fixture
def engine(settings):
    engine = build_engine(settings.database_url)
    init_models(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    yield session
    session.close()


@pytest.fixture
def cache():
    return CacheStore()


@pytest.fixture
def metadata():
    return FakeMetadataLookup()


@pytest.fixture
def customer():
    return Requester("johndoe@email.com", Role.USER)


@pytest.fixture
def other_customer():
    return Requester("janedoe@email.com", Role.USER)


@pytest.fixture
def admin():
    return Requester("admin@email.com", Role.ADMIN)


@pytest.fixture
def make_record(session_factory):
    """Insert a catalog item through its own session and return it detached."""

    def _make(
        artist="Radiohead",
        album="OK Computer",
        format=RecordFormat.VINYL,
        category=RecordCategory.ALTERNATIVE,
        price="20.00",
        qty=10,
    ):
        with session_factory() as session:
            record = Record(
                artist=artist,
                album=album,
                format=format.value,
                category=category.value,
                price=Decimal(price),
                qty=qty,
                track_list=[],
            )
            session.add(record)
            session.commit()
            return record

    return _make


@pytest.fixture
def stock_of(session_factory):
    def _stock(record_id):
        with session_factory() as session:
            return session.get(Record, record_id).qty

    return _stock


@pytest.fixture
def order_service(db, cache, settings):
    return OrderService(db, cache, settings=settings)


@pytest.fixture
def record_service(db, cache, metadata, settings):
    return RecordService(db, cache, metadata, settings=settings)
