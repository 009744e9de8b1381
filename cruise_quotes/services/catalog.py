"""
카탈로그 조회 (읽기 전용)

카탈로그 CRUD 는 백오피스가 담당하며, 임포트 파이프라인은 아래 조회만 사용합니다.
호출마다 짧은 세션을 열고 닫으며 캐시는 두지 않습니다.
"""
from dataclasses import dataclass
from typing import Callable, List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from cruise_quotes.models import CabinCategory, CabinType, Sailing, Ship, Supplier


@dataclass
class CabinTypeWithCategory:
    """선실 타입 + 카테고리명 (매칭용)"""
    id: int
    ship_id: int
    name: str
    code: Optional[str]
    category_id: int
    category_name: str


class CatalogRepository:
    def __init__(self, session_factory: Callable[[], Session]):
        self.session_factory = session_factory

    def get_sailing_by_id(self, sailing_id: int) -> Optional[Sailing]:
        with self.session_factory() as session:
            return session.get(Sailing, sailing_id)

    def get_sailing_by_code(self, sailing_code: str) -> Optional[Sailing]:
        with self.session_factory() as session:
            return session.scalars(
                select(Sailing).where(Sailing.sailing_code == sailing_code)
            ).first()

    def list_sailings_by_ship(self, ship_id: int) -> List[Sailing]:
        with self.session_factory() as session:
            return list(session.scalars(
                select(Sailing)
                .where(Sailing.ship_id == ship_id)
                .order_by(Sailing.departure_date, Sailing.id)
            ))

    def list_ships(
        self,
        page: int = 1,
        page_size: int = 100,
        cruise_line_id: Optional[int] = None,
        status: Optional[str] = None,
    ) -> List[Ship]:
        stmt = select(Ship)
        if cruise_line_id is not None:
            stmt = stmt.where(Ship.cruise_line_id == cruise_line_id)
        if status:
            stmt = stmt.where(Ship.status == status)
        stmt = stmt.order_by(Ship.id).offset(max(page - 1, 0) * page_size).limit(page_size)
        with self.session_factory() as session:
            return list(session.scalars(stmt))

    def get_ship_by_id(self, ship_id: int) -> Optional[Ship]:
        with self.session_factory() as session:
            return session.get(Ship, ship_id)

    def list_cabin_types_by_ship(self, ship_id: int) -> List[CabinTypeWithCategory]:
        """활성화된 선실 타입만 카테고리명과 함께 반환"""
        stmt = (
            select(CabinType, CabinCategory.name)
            .join(CabinCategory, CabinCategory.id == CabinType.category_id)
            .where(CabinType.ship_id == ship_id, CabinType.is_enabled.is_(True))
            .order_by(CabinType.sort_order, CabinType.id)
        )
        with self.session_factory() as session:
            return [
                CabinTypeWithCategory(
                    id=cabin.id,
                    ship_id=cabin.ship_id,
                    name=cabin.name,
                    code=cabin.code,
                    category_id=cabin.category_id,
                    category_name=category_name,
                )
                for cabin, category_name in session.execute(stmt)
            ]

    def get_cabin_type_by_id(self, cabin_type_id: int) -> Optional[CabinType]:
        with self.session_factory() as session:
            return session.get(CabinType, cabin_type_id)

    def get_supplier_by_id(self, supplier_id: int) -> Optional[Supplier]:
        with self.session_factory() as session:
            return session.get(Supplier, supplier_id)
