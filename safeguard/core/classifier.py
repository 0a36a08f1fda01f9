"""
Safety zone classification for SafeGuard.

This module resolves a location against a set of (possibly overlapping)
safety zones into a single safety level:

- no matching zone: open area, treated as ``safe``
- several matching zones: the most restrictive level wins
  (restricted > caution > safe)
- equally restrictive matches: the zone whose centroid is closest to the
  location wins, then the smallest zone id
"""

import time
from typing import Dict, List, Optional, Sequence
from pydantic import BaseModel, Field
from safeguard.core.models import LEVEL_ORDER, Coordinate, SafetyAssessment, SafetyZone
from safeguard.core.errors import ValidationError
from safeguard.core.messages import safety_message
from safeguard.core.scoring import BASE_SCORES, route_recommendation
from safeguard.common.geo import (
    calculate_bounding_box,
    distinct_vertex_count,
    haversine_distance,
    point_in_polygon,
    polygon_centroid,
)
from safeguard.observability import metrics
from safeguard.observability.logging_setup import get_logger

log = get_logger("safeguard.classifier")

# 경로 점수 계산용 지점 점수
ROUTE_POINT_SCORES = {
    "safe": 100,
    "caution": 50,
    "restricted": 0
}

class RouteSafety(BaseModel):
    """경로 안전도 분석 결과"""
    score: int
    breakdown: Dict[str, int] = Field(default_factory=dict)
    recommendation: str

def validate_zone(zone: SafetyZone) -> None:
    """
    구역이 분류에 사용할 수 있는지 확인합니다.

    Raises:
        ValidationError: 서로 다른 꼭짓점이 3개 미만인 퇴화 폴리곤
    """
    if distinct_vertex_count(zone.boundary) < 3:
        raise ValidationError(
            f"퇴화된 폴리곤 (꼭짓점 {len(zone.boundary)}개)", zone_id=zone.id
        )

def centroid_distance(location: Coordinate, zone: SafetyZone) -> float:
    """위치에서 구역 중심까지의 거리 (미터)"""
    lat, lon = polygon_centroid(zone.boundary)
    return haversine_distance(location, Coordinate(latitude=lat, longitude=lon,
                                                   timestamp=location.timestamp))

def in_bounding_box(location: Coordinate, zone: SafetyZone) -> bool:
    """경계 상자 밖이면 폴리곤 검사를 생략할 수 있습니다."""
    min_lon, min_lat, max_lon, max_lat = calculate_bounding_box(zone.boundary)
    return min_lat <= location.latitude <= max_lat and min_lon <= location.longitude <= max_lon

def matching_zones(location: Coordinate, zones: Sequence[SafetyZone]) -> List[SafetyZone]:
    """
    위치를 포함하는 모든 구역을 반환합니다.

    퇴화된 구역은 경고 후 건너뛰며, 나머지 구역의 평가는 계속됩니다.
    """
    matches: List[SafetyZone] = []
    for zone in zones:
        try:
            validate_zone(zone)
        except ValidationError as e:
            metrics.zones_skipped.inc()
            log.warning(f"잘못된 구역 건너뜀 zone_id:{e.zone_id} error:{e}")
            continue
        if in_bounding_box(location, zone) and point_in_polygon(location, zone.boundary):
            matches.append(zone)
    return matches

def resolve_overlap(location: Coordinate, matches: Sequence[SafetyZone]) -> Optional[SafetyZone]:
    """
    겹치는 구역 중 보고할 구역을 결정합니다.

    가장 제한적인 등급 우선, 동률이면 중심 거리가 가까운 구역, 그다음 id 순.
    """
    if not matches:
        return None
    return min(
        matches,
        key=lambda z: (-LEVEL_ORDER[z.safety_level], centroid_distance(location, z), z.id),
    )

def classify(location: Coordinate, zones: Sequence[SafetyZone]) -> SafetyAssessment:
    """
    위치를 안전 구역 목록에 대해 분류합니다.

    Args:
        location: 분류할 위치
        zones: 안전 구역 목록 (겹칠 수 있음)

    Returns:
        등급, 기본 점수, 매칭된 구역이 채워진 평가 결과 (요인은 score()에서 채움)
    """
    started = time.perf_counter()

    zone = resolve_overlap(location, matching_zones(location, zones))
    # 구역 밖은 제한 정보가 없으므로 safe로 간주
    level = zone.safety_level if zone else "safe"

    metrics.classify_seconds.observe(time.perf_counter() - started)
    metrics.classifications.labels(level=level).inc()

    log.debug("위치 분류 완료",
              lat=location.latitude,
              lon=location.longitude,
              level=level,
              zone_id=zone.id if zone else None)

    return SafetyAssessment(
        location=location,
        safety_level=level,
        score=BASE_SCORES[level],
        matched_zone=zone,
        message=safety_message(level),
    )

def zones_near(location: Coordinate, zones: Sequence[SafetyZone],
               radius_m: float) -> List[SafetyZone]:
    """
    중심이 반경 안에 있는 구역을 가까운 순으로 반환합니다.

    퇴화된 구역(꼭짓점 없음)은 제외합니다.
    """
    nearby = []
    for zone in zones:
        if not zone.boundary:
            continue
        distance = centroid_distance(location, zone)
        if distance <= radius_m:
            nearby.append((distance, zone))
    nearby.sort(key=lambda item: (item[0], item[1].id))
    return [zone for _, zone in nearby]

def find_zone(zones: Sequence[SafetyZone], zone_id: str) -> Optional[SafetyZone]:
    """id로 구역을 찾습니다."""
    return next((z for z in zones if z.id == zone_id), None)

def route_safety(points: Sequence[Coordinate], zones: Sequence[SafetyZone]) -> RouteSafety:
    """
    경로 지점들의 평균 안전 점수를 계산합니다.

    Args:
        points: 경로 지점 목록
        zones: 안전 구역 목록

    Returns:
        평균 점수, 등급별 지점 수, 권고 문구
    """
    breakdown = {"safe": 0, "caution": 0, "restricted": 0, "total": len(points)}
    if not points:
        return RouteSafety(score=0, breakdown=breakdown, recommendation=route_recommendation(0))

    total = 0
    for point in points:
        zone = resolve_overlap(point, matching_zones(point, zones))
        level = zone.safety_level if zone else "safe"
        breakdown[level] += 1
        total += ROUTE_POINT_SCORES[level]

    average = total / len(points)
    return RouteSafety(
        score=round(average),
        breakdown=breakdown,
        recommendation=route_recommendation(average),
    )
