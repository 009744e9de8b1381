"""
카탈로그 매처

모델이 추출한 항차/선박/선실 타입 이름을 카탈로그 ID 로 연결합니다.
정확 일치를 먼저 시도하고, 실패하면 정규화된 이름의 유사도로 최선 후보를 고르되
임계값 미만이면 매칭하지 않습니다.
"""
import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Dict, List, Optional, Sequence, Tuple

from cruise_quotes.models import Sailing, Ship
from cruise_quotes.schemas import EntityStatus
from cruise_quotes.services.catalog import CabinTypeWithCategory, CatalogRepository
from cruise_quotes.services.similarity import name_similarity, normalize_name

logger = logging.getLogger(__name__)

SHIP_MATCH_THRESHOLD = 0.7
CABIN_TYPE_MATCH_THRESHOLD = 0.6
DEPARTURE_TOLERANCE = timedelta(days=1)
CATEGORY_BONUS = 0.2
CODE_VALIDATION_PENALTY = 0.3
CODE_MISMATCH_PENALTY = 0.2
SHIP_CATALOG_PAGE_SIZE = 100


@dataclass
class MatchResult:
    sailing: Optional[Sailing] = None
    ship: Optional[Ship] = None
    cabin_types: Dict[str, int] = field(default_factory=dict)
    confidence: float = 0.0
    issues: List[str] = field(default_factory=list)

    @property
    def sailing_id(self) -> Optional[int]:
        return self.sailing.id if self.sailing else None


@dataclass
class CabinTypeMatch:
    name: str
    cabin_type_id: Optional[int]
    score: float


def _within_tolerance(candidate: date, requested: date) -> bool:
    return abs(candidate - requested) <= DEPARTURE_TOLERANCE


class CatalogMatcher:
    def __init__(self, catalog: CatalogRepository):
        self.catalog = catalog

    def match_sailing(self, sailing_code: str, ship_name: str, departure: date, nights: int) -> MatchResult:
        """
        항차 매칭.

        1) 항차 코드 정확 조회 (박 수 동일 + 출항일 ±1일이면 신뢰도 1.0)
        2) 선박명으로 선박 매칭 후 해당 선박의 항차 중 출항일/박 수가 맞는 첫 항차
        """
        result = MatchResult(confidence=1.0)

        if sailing_code:
            sailing = self.catalog.get_sailing_by_code(sailing_code)
            if sailing is not None:
                if sailing.nights == nights and _within_tolerance(sailing.departure_date, departure):
                    result.sailing = sailing
                    result.ship = self.catalog.get_ship_by_id(sailing.ship_id)
                    return result
                result.issues.append(
                    f"sailing code {sailing_code} found but departure/nights differ "
                    f"(catalog: {sailing.departure_date.isoformat()}/{sailing.nights}, "
                    f"parsed: {departure.isoformat()}/{nights})"
                )
                result.confidence -= CODE_VALIDATION_PENALTY

        ship, _ = self.match_ship(ship_name)
        if ship is None:
            result.issues.append(f"unknown ship: {ship_name}")
            result.confidence = 0.0
            return result
        result.ship = ship

        for candidate in self.catalog.list_sailings_by_ship(ship.id):
            if candidate.nights != nights or not _within_tolerance(candidate.departure_date, departure):
                continue
            result.sailing = candidate
            if candidate.sailing_code != sailing_code:
                result.issues.append(
                    f"sailing code mismatch: parsed {sailing_code}, catalog {candidate.sailing_code}"
                )
                result.confidence -= CODE_MISMATCH_PENALTY
            result.confidence = max(result.confidence, 0.0)
            return result

        result.issues.append(
            f"no sailing of {ship.name} departs on {departure.isoformat()} for {nights} nights"
        )
        result.confidence = 0.0
        return result

    def match_ship(self, name: str) -> Tuple[Optional[Ship], float]:
        """활성 선박 목록(최대 100척)에서 정확 일치 -> 별칭 일치 -> 유사도 0.7 이상 순으로 탐색"""
        if not name or not name.strip():
            return None, 0.0

        ships = self.catalog.list_ships(
            page=1, page_size=SHIP_CATALOG_PAGE_SIZE, status=EntityStatus.ACTIVE.value
        )

        query = name.strip().casefold()
        for ship in ships:
            if ship.name.strip().casefold() == query:
                return ship, 1.0
        for ship in ships:
            if any(alias.strip().casefold() == query for alias in (ship.aliases or [])):
                return ship, 1.0

        normalized = normalize_name(name)
        best: Optional[Ship] = None
        best_score = 0.0
        for ship in ships:
            score = name_similarity(normalized, normalize_name(ship.name))
            if score > best_score:
                best, best_score = ship, score

        if best is not None and best_score >= SHIP_MATCH_THRESHOLD:
            logger.debug(f"[MATCH] ship '{name}' -> '{best.name}' (score={best_score:.2f})")
            return best, best_score
        return None, best_score

    def _best_cabin_type(
        self,
        candidates: Sequence[CabinTypeWithCategory],
        name: str,
        category: str = "",
    ) -> CabinTypeMatch:
        """후보 중 최선 1건. 임계값 미만이면 cabin_type_id=None (최고 점수는 유지)"""
        query = name.strip().casefold()
        exact = next((c for c in candidates if c.name.strip().casefold() == query), None)
        if exact is not None:
            return CabinTypeMatch(name=name, cabin_type_id=exact.id, score=1.0)

        normalized = normalize_name(name)
        best_id: Optional[int] = None
        best_score = 0.0
        for candidate in candidates:
            score = name_similarity(normalized, normalize_name(candidate.name))
            if category and category == candidate.category_name:
                score = min(1.0, score + CATEGORY_BONUS)
            if score > best_score:
                best_id, best_score = candidate.id, score

        if best_id is not None and best_score >= CABIN_TYPE_MATCH_THRESHOLD:
            return CabinTypeMatch(name=name, cabin_type_id=best_id, score=best_score)
        return CabinTypeMatch(name=name, cabin_type_id=None, score=best_score)

    def match_cabin_types(
        self,
        ship_id: int,
        items: Sequence[Tuple[str, str]],
    ) -> Dict[Tuple[str, str], CabinTypeMatch]:
        """
        선실 타입 매칭. 선박의 활성 선실 타입을 한 번만 조회합니다.

        (이름, 카테고리) 쌍 단위로 매칭하므로 같은 이름이라도 카테고리가 다르면 따로 판정합니다.
        요청 카테고리가 후보의 카테고리와 같으면 유사도에 +0.2 (최대 1.0).

        매칭 실패 항목도 cabin_type_id=None 과 최고 점수로 포함됩니다.
        """
        candidates = self.catalog.list_cabin_types_by_ship(ship_id)
        results: Dict[Tuple[str, str], CabinTypeMatch] = {}
        for name, category in items:
            key = (name, category or "")
            if key not in results:
                results[key] = self._best_cabin_type(candidates, name, key[1])
        return results
