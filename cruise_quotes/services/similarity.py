"""
이름 정규화 및 유사도 계산 (DB 불필요, 순수 함수)
"""


def normalize_name(name: str) -> str:
    """소문자화 후 연속 공백을 하나로 합치고 앞뒤 공백 제거"""
    return " ".join(name.lower().split())


def levenshtein_distance(a: str, b: str) -> int:
    if a == b:
        return 0
    if not a:
        return len(b)
    if not b:
        return len(a)

    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            cost = 0 if ca == cb else 1
            current.append(min(
                previous[j] + 1,         # 삭제
                current[j - 1] + 1,      # 삽입
                previous[j - 1] + cost,  # 치환
            ))
        previous = current
    return previous[-1]


def name_similarity(a: str, b: str) -> float:
    """
    0.0 ~ 1.0 사이 유사도.

    - 동일 문자열: 1.0
    - 한쪽이 빈 문자열: 0.0
    - 한쪽이 다른 쪽을 포함: len(짧은쪽) / len(긴쪽)
    - 그 외: 1 - levenshtein / max(len)
    """
    if a == b:
        return 1.0
    if not a or not b:
        return 0.0

    shorter, longer = (a, b) if len(a) <= len(b) else (b, a)
    if shorter in longer:
        return len(shorter) / len(longer)

    distance = levenshtein_distance(a, b)
    return 1.0 - distance / max(len(a), len(b))
