"""
Geographic utilities for SafeGuard.

This module provides geographic calculations including
distance calculation, point-in-polygon testing, and
polygon centroids.

Longitude/latitude are treated as planar coordinates for the
polygon test. That is acceptable at city scale but not valid near
the poles or across the antimeridian.
"""

import math
from typing import Protocol, Sequence, Tuple

# 지구 반지름 (미터)
EARTH_RADIUS_M = 6_371_000.0

class GeoPoint(Protocol):
    """latitude/longitude 속성을 가진 좌표"""
    latitude: float
    longitude: float

def haversine_distance(a: GeoPoint, b: GeoPoint) -> float:
    """
    두 지점 간의 Haversine 거리를 계산합니다 (미터).

    Args:
        a: 첫 번째 지점
        b: 두 번째 지점

    Returns:
        두 지점 간의 거리 (미터)
    """
    # 도를 라디안으로 변환
    lat1_rad = math.radians(a.latitude)
    lon1_rad = math.radians(a.longitude)
    lat2_rad = math.radians(b.latitude)
    lon2_rad = math.radians(b.longitude)

    # 위도와 경도의 차이
    dlat = lat2_rad - lat1_rad
    dlon = lon2_rad - lon1_rad

    # Haversine 공식
    h = (math.sin(dlat / 2) ** 2 +
         math.cos(lat1_rad) * math.cos(lat2_rad) * math.sin(dlon / 2) ** 2)
    c = 2 * math.asin(min(1.0, math.sqrt(h)))

    return c * EARTH_RADIUS_M

def point_in_polygon(point: GeoPoint, polygon: Sequence[GeoPoint]) -> bool:
    """
    점이 폴리곤 내부에 있는지 Ray casting 알고리즘으로 확인합니다.

    경계 위의 점에 대한 결과는 입력이 같으면 항상 같습니다.

    Args:
        point: 확인할 점
        polygon: 폴리곤의 꼭짓점들 (닫힌 폴리곤, 마지막 점 반복 불필요)

    Returns:
        점이 폴리곤 내부에 있으면 True, 외부에 있거나 꼭짓점이 3개 미만이면 False
    """
    if len(polygon) < 3:
        return False

    x, y = point.longitude, point.latitude
    n = len(polygon)
    inside = False

    p1x, p1y = polygon[0].longitude, polygon[0].latitude
    for i in range(1, n + 1):
        vertex = polygon[i % n]
        p2x, p2y = vertex.longitude, vertex.latitude
        if min(p1y, p2y) < y <= max(p1y, p2y) and x <= max(p1x, p2x):
            # y가 두 끝점 사이에 있으므로 p1y != p2y
            xinters = (y - p1y) * (p2x - p1x) / (p2y - p1y) + p1x
            if p1x == p2x or x <= xinters:
                inside = not inside
        p1x, p1y = p2x, p2y

    return inside

def polygon_centroid(polygon: Sequence[GeoPoint]) -> Tuple[float, float]:
    """
    폴리곤 꼭짓점의 평균 좌표를 계산합니다.

    Returns:
        (위도, 경도)
    """
    if not polygon:
        raise ValueError("빈 폴리곤의 중심은 계산할 수 없습니다")

    lat = sum(p.latitude for p in polygon) / len(polygon)
    lon = sum(p.longitude for p in polygon) / len(polygon)
    return (lat, lon)

def calculate_bounding_box(polygon: Sequence[GeoPoint]) -> Tuple[float, float, float, float]:
    """
    폴리곤의 경계 상자를 계산합니다.

    Returns:
        (min_lon, min_lat, max_lon, max_lat)
    """
    if not polygon:
        return (0, 0, 0, 0)

    lons = [p.longitude for p in polygon]
    lats = [p.latitude for p in polygon]

    return (min(lons), min(lats), max(lons), max(lats))

def distinct_vertex_count(polygon: Sequence[GeoPoint]) -> int:
    """중복을 제거한 꼭짓점 수를 반환합니다."""
    return len({(p.latitude, p.longitude) for p in polygon})

def validate_coordinates(lat: float, lon: float) -> bool:
    """
    좌표가 유효한지 확인합니다.

    Args:
        lat: 위도
        lon: 경도

    Returns:
        좌표가 유효하면 True
    """
    return -90 <= lat <= 90 and -180 <= lon <= 180
