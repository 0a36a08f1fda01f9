"""
hypothesis를 활용한 classifier 모듈 테스트

이 모듈은 구역 분류(겹침 해소, 퇴화 폴리곤 처리)와
경로 안전도 계산을 테스트합니다.
"""

import pytest
from hypothesis import given, strategies as st
from safeguard.core.models import Coordinate, SafetyZone
from safeguard.core.classifier import (
    classify, in_bounding_box, matching_zones, resolve_overlap, validate_zone,
    zones_near, find_zone, route_safety
)
from safeguard.core.errors import ValidationError
from safeguard.common.geo import point_in_polygon
from fakes import point, square


class TestClassify:
    """classify 함수 테스트"""

    def test_square_scenario_reports_safe_zone(self):
        """정사각형 safe 구역 안의 점은 safe/z1"""
        zones = [square("z1", "safe", 0.0, 0.0, 10.0)]
        result = classify(point(5, 5), zones)

        assert result.safety_level == "safe"
        assert result.matched_zone.id == "z1"
        assert result.score == 70

    def test_outside_all_zones_is_safe(self, sample_zones):
        """어느 구역에도 속하지 않으면 safe, 구역 없음"""
        result = classify(point(20, 20), sample_zones)
        assert result.safety_level == "safe"
        assert result.matched_zone is None

    def test_empty_zone_list(self):
        result = classify(point(1, 1), [])
        assert result.safety_level == "safe"
        assert result.matched_zone is None

    def test_most_restrictive_wins(self, sample_zones):
        """겹친 구역 중 가장 제한적인 등급"""
        assert classify(point(3.5, 3.5), sample_zones).matched_zone.id == "r1"
        assert classify(point(2.5, 2.5), sample_zones).matched_zone.id == "c1"
        assert classify(point(1, 1), sample_zones).matched_zone.id == "z1"

    def test_result_carries_message_and_location(self, sample_zones):
        location = point(3.5, 3.5, accuracy=12)
        result = classify(location, sample_zones)
        assert result.location == location
        assert "restricted" in result.message.lower()
        assert result.factors == []

    def test_tie_break_closest_centroid(self):
        """같은 등급이면 중심이 가까운 구역"""
        big = square("a_big", "caution", 0.0, 0.0, 10.0)       # 중심 (5, 5)
        small = square("b_small", "caution", 0.0, 0.0, 2.0)    # 중심 (1, 1)
        result = classify(point(1.5, 1.5), [big, small])
        assert result.matched_zone.id == "b_small"

    def test_tie_break_zone_id(self):
        """중심 거리도 같으면 id가 작은 구역"""
        first = square("zone-b", "restricted", 0.0, 0.0, 4.0)
        second = square("zone-a", "restricted", 0.0, 0.0, 4.0)
        result = classify(point(1, 1), [first, second])
        assert result.matched_zone.id == "zone-a"

    def test_degenerate_zone_skipped(self, sample_zones):
        """꼭짓점이 3개 미만인 구역은 건너뛰고 나머지는 평가"""
        line = SafetyZone(
            id="bad", name="bad", safety_level="restricted",
            boundary=[Coordinate(latitude=0, longitude=0), Coordinate(latitude=9, longitude=9)],
        )
        result = classify(point(1, 1), [line] + sample_zones)
        assert result.matched_zone.id == "z1"

    def test_duplicate_vertices_are_degenerate(self):
        dup = SafetyZone(
            id="dup", name="dup", safety_level="caution",
            boundary=[point(0, 0), point(0, 0), point(1, 1), point(1, 1)],
        )
        with pytest.raises(ValidationError) as exc_info:
            validate_zone(dup)
        assert exc_info.value.zone_id == "dup"

    @given(st.floats(min_value=3.01, max_value=3.99), st.floats(min_value=3.01, max_value=3.99))
    def test_inner_restricted_always_wins(self, lat, lon):
        zones = [
            square("z1", "safe", 0.0, 0.0, 10.0),
            square("c1", "caution", 2.0, 2.0, 4.0),
            square("r1", "restricted", 3.0, 3.0, 1.0),
        ]
        result = classify(Coordinate(latitude=lat, longitude=lon), zones)
        assert result.safety_level == "restricted"

    @given(st.permutations(["safe", "caution", "restricted"]))
    def test_order_independent(self, levels):
        """구역 순서와 무관하게 같은 결과"""
        zones = [square(f"z{i}", level, 0.0, 0.0, 5.0 + i) for i, level in enumerate(levels)]
        forward = classify(point(1, 1), zones)
        backward = classify(point(1, 1), list(reversed(zones)))
        assert forward.safety_level == backward.safety_level == "restricted"
        assert forward.matched_zone.id == backward.matched_zone.id


class TestZoneQueries:
    """구역 조회 보조 함수 테스트"""

    def test_matching_zones(self, sample_zones):
        ids = {z.id for z in matching_zones(point(3.5, 3.5), sample_zones)}
        assert ids == {"z1", "c1", "r1"}

    def test_resolve_overlap_empty(self):
        assert resolve_overlap(point(0, 0), []) is None

    def test_zones_near_sorted_by_distance(self, sample_zones):
        """반경 안의 구역을 가까운 순으로"""
        near = zones_near(point(3.5, 3.5), sample_zones, radius_m=400_000)
        assert [z.id for z in near] == ["r1", "c1", "z1"]

    def test_zones_near_radius_excludes(self, sample_zones):
        near = zones_near(point(3.5, 3.5), sample_zones, radius_m=1_000)
        assert [z.id for z in near] == ["r1"]

    def test_find_zone(self, sample_zones):
        assert find_zone(sample_zones, "c1").safety_level == "caution"
        assert find_zone(sample_zones, "missing") is None

    def test_in_bounding_box(self):
        zone = square("r1", "restricted", 3.0, 3.0, 1.0)
        assert in_bounding_box(point(3.5, 3.5), zone)
        assert in_bounding_box(point(4.0, 3.0), zone)
        assert not in_bounding_box(point(4.5, 3.5), zone)

    @given(st.floats(min_value=-10, max_value=10), st.floats(min_value=-10, max_value=10))
    def test_bounding_box_never_hides_a_match(self, lat, lon):
        """경계 상자 밖의 점은 폴리곤 안에도 없음"""
        zone = SafetyZone(
            id="tri", name="tri", safety_level="caution",
            boundary=[point(0, 0), point(0, 6), point(5, 2)],
        )
        location = Coordinate(latitude=lat, longitude=lon)
        if point_in_polygon(location, zone.boundary):
            assert in_bounding_box(location, zone)


class TestRouteSafety:
    """경로 안전도 테스트"""

    def test_route_average(self, sample_zones):
        route = route_safety([point(1, 1), point(2.5, 2.5), point(3.5, 3.5)], sample_zones)
        assert route.score == 50
        assert route.breakdown == {"safe": 1, "caution": 1, "restricted": 1, "total": 3}
        assert "caution" in route.recommendation

    def test_empty_route(self):
        route = route_safety([], [])
        assert route.score == 0
        assert route.breakdown["total"] == 0
