from collections.abc import Iterator

from sqlalchemy import create_engine
from sqlalchemy.orm import Session, sessionmaker

from cruise_quotes.models import Base
from cruise_quotes.settings import settings

engine = create_engine(settings.database_url, pool_pre_ping=True)

SessionLocal = sessionmaker(
    bind=engine,
    autoflush=False,
    expire_on_commit=False,
)


def get_session() -> Iterator[Session]:
    with SessionLocal() as session:
        with session.begin():
            yield session


def init_db() -> None:
    """테이블 생성 (alembic 없이 로컬 개발용)"""
    Base.metadata.create_all(bind=engine)
