"""Pytest configuration and fixtures."""

import zipfile
from datetime import date
from types import SimpleNamespace

import pytest
from sqlalchemy import create_engine, JSON
from sqlalchemy.orm import sessionmaker, Session

from cruise_quotes.models import Base, CabinCategory, CabinType, CruiseLine, Sailing, Ship, Supplier


def _patch_jsonb_to_json(base):
    """
    SQLite에서 JSONB를 JSON으로 변경하여 컴파일 오류 방지.
    테스트용으로만 사용.
    """
    from sqlalchemy.dialects.postgresql import JSONB

    for table in base.metadata.sorted_tables:
        for column in table.columns:
            if isinstance(column.type, JSONB):
                # JSONB → JSON으로 변경 (SQLite 호환)
                column.type = JSON()


@pytest.fixture(scope="function")
def test_engine(tmp_path):
    """
    테스트용 SQLite 엔진.
    워커/오케스트레이터가 스레드별로 세션을 열기 때문에 메모리 DB 대신 파일 DB 사용.
    """
    _patch_jsonb_to_json(Base)
    engine = create_engine(
        f"sqlite:///{tmp_path / 'test.db'}",
        connect_args={"check_same_thread": False, "timeout": 30},
        echo=False  # 테스트 로그 줄이기
    )
    Base.metadata.create_all(bind=engine)
    yield engine
    Base.metadata.drop_all(bind=engine)
    engine.dispose()


@pytest.fixture(scope="function")
def session_factory(test_engine):
    return sessionmaker(bind=test_engine, autoflush=False, expire_on_commit=False)


@pytest.fixture(scope="function")
def test_session(session_factory) -> Session:
    """
    테스트용 데이터베이스 세션 fixture.
    각 테스트마다 새로운 DB 생성.
    """
    session = session_factory()
    try:
        yield session
        session.commit()  # 테스트 성공 시 commit
    except Exception:
        session.rollback()  # 실패 시 rollback
        raise
    finally:
        session.close()


@pytest.fixture(scope="function")
def db_session(test_session: Session):
    """
    test_session alias.
    """
    yield test_session


@pytest.fixture(scope="function")
def catalog(test_session: Session):
    """
    기본 카탈로그: Quantum of the Seas / QN20260515 (2026-05-15, 5박)
    선실 타입: Balcony(阳台), Interior(内舱)
    """
    line = CruiseLine(name="皇家加勒比", name_en="Royal Caribbean", aliases=[])
    test_session.add(line)
    test_session.flush()

    ship = Ship(cruise_line_id=line.id, name="Quantum of the Seas", aliases=["海洋量子号"], status="ACTIVE")
    test_session.add(ship)

    categories = {}
    for order, name in enumerate(("内舱", "海景", "阳台", "套房")):
        category = CabinCategory(name=name, sort_order=order)
        test_session.add(category)
        categories[name] = category
    test_session.flush()

    balcony = CabinType(ship_id=ship.id, category_id=categories["阳台"].id, name="Balcony", code="BAL")
    interior = CabinType(ship_id=ship.id, category_id=categories["内舱"].id, name="Interior", code="INT")
    test_session.add_all([balcony, interior])

    sailing = Sailing(
        ship_id=ship.id,
        sailing_code="QN20260515",
        departure_date=date(2026, 5, 15),
        return_date=date(2026, 5, 20),
        nights=5,
        route="Tokyo–Osaka",
    )
    supplier = Supplier(name="Blue Ocean Travel", aliases=[])
    test_session.add_all([sailing, supplier])
    test_session.commit()

    return SimpleNamespace(
        cruise_line_id=line.id,
        ship_id=ship.id,
        sailing_id=sailing.id,
        balcony_id=balcony.id,
        interior_id=interior.id,
        supplier_id=supplier.id,
        category_ids={name: c.id for name, c in categories.items()},
    )


DOCUMENT_XML = (
    '<?xml version="1.0" encoding="{encoding}" standalone="yes"?>'
    '<w:document xmlns:w="http://schemas.openxmlformats.org/wordprocessingml/2006/main">'
    "<w:body>{body}</w:body></w:document>"
)


@pytest.fixture
def docx_factory(tmp_path):
    """
    최소 .docx 생성기.
    paragraphs 의 각 항목은 문자열(run 1개) 또는 문자열 리스트(run 여러 개).
    """
    def _make(paragraphs, name="quote.docx", encoding="UTF-8"):
        body = ""
        for paragraph in paragraphs:
            runs = [paragraph] if isinstance(paragraph, str) else paragraph
            body += "<w:p>" + "".join(f"<w:r><w:t xml:space=\"preserve\">{r}</w:t></w:r>" for r in runs) + "</w:p>"
        path = tmp_path / name
        with zipfile.ZipFile(path, "w") as zf:
            zf.writestr("[Content_Types].xml", "<Types/>")
            zf.writestr("word/document.xml", DOCUMENT_XML.format(encoding=encoding, body=body).encode("utf-8"))
        return path

    return _make


# 테스트 마커 정의
def pytest_configure(config):
    """Pytest 마커 등록."""
    config.addinivalue_line("markers", "unit: 단위 테스트 (DB 불필요)")
    config.addinivalue_line("markers", "integration: 통합 테스트 (파이프라인 전체)")
    config.addinivalue_line("markers", "slow: 느린 테스트 (> 1분)")
