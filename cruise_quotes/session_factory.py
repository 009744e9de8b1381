from sqlalchemy.orm import Session

from cruise_quotes.db import SessionLocal


def session_factory() -> Session:
    return SessionLocal()
