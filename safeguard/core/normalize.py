"""
Normalization functions for SafeGuard.

This module converts raw dictionaries (zone API responses, zone files,
device location messages) into domain models. Both the mobile app's
camelCase keys and snake_case keys are accepted.
"""

import json
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple
from pathlib import Path
from dateutil.parser import isoparse
from jsonschema import validate
from jsonschema.exceptions import ValidationError as SchemaValidationError
from pydantic import ValidationError as PydanticValidationError
from safeguard.core.models import Contact, Coordinate, EmergencyService, SafetyZone
from safeguard.core.errors import ValidationError
from safeguard.common.geo import validate_coordinates
from safeguard.observability.logging_setup import get_logger

log = get_logger("safeguard.normalize")

ZONE_DOCUMENT_SCHEMA = json.loads((Path(__file__).parent / "zone_schema.json").read_text(encoding="utf-8"))

def _pick(raw: Dict[str, Any], *keys: str, default: Any = None) -> Any:
    """여러 키 후보 중 처음 발견되는 값을 반환합니다."""
    for key in keys:
        if key in raw and raw[key] is not None:
            return raw[key]
    return default

def _parse_timestamp(value: Any) -> Optional[datetime]:
    """ISO 문자열 또는 epoch(초/밀리초)를 aware datetime으로 변환합니다."""
    if value is None:
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        # 모바일 앱은 밀리초 epoch를 사용
        seconds = value / 1000.0 if value > 1e11 else float(value)
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str):
        parsed = isoparse(value.strip())
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise ValueError(f"지원하지 않는 시간 형식: {value!r}")

def to_coordinate(raw: Dict[str, Any]) -> Coordinate:
    """
    원시 딕셔너리를 Coordinate로 변환합니다.

    Args:
        raw: {latitude|lat, longitude|lon|lng, accuracy|acc, timestamp|tst}

    Returns:
        Coordinate

    Raises:
        ValidationError: 필수 값이 없거나 범위를 벗어난 경우
    """
    lat = _pick(raw, "latitude", "lat")
    lon = _pick(raw, "longitude", "lon", "lng")
    if lat is None or lon is None:
        raise ValidationError(f"좌표 값 누락: {raw!r}")

    try:
        data: Dict[str, Any] = {"latitude": float(lat), "longitude": float(lon)}
        accuracy = _pick(raw, "accuracy", "acc", "gps_accuracy")
        if accuracy is not None:
            data["accuracy"] = float(accuracy)
    except (TypeError, ValueError) as e:
        raise ValidationError(f"숫자가 아닌 좌표 값: {raw!r}") from e
    if not validate_coordinates(data["latitude"], data["longitude"]):
        raise ValidationError(f"좌표 범위 초과: lat={data['latitude']} lon={data['longitude']}")

    try:
        ts = _parse_timestamp(_pick(raw, "timestamp", "tst"))
    except ValueError as e:
        raise ValidationError(str(e)) from e
    if ts is not None:
        data["timestamp"] = ts

    try:
        return Coordinate(**data)
    except PydanticValidationError as e:
        raise ValidationError(f"잘못된 좌표: {e.errors()[0]['msg']}") from e

def to_zone(raw: Dict[str, Any]) -> SafetyZone:
    """
    원시 딕셔너리를 SafetyZone으로 변환합니다.

    꼭짓점 수는 여기서 검증하지 않습니다. 퇴화된 폴리곤은 분류기가
    경고와 함께 건너뜁니다.

    Raises:
        ValidationError: 필수 필드가 없거나 값이 잘못된 경우
    """
    zone_id = _pick(raw, "id", "zone_id")
    if zone_id is None:
        raise ValidationError("구역 id 누락")
    zone_id = str(zone_id)

    vertices = _pick(raw, "boundary", "coordinates", default=[])
    try:
        boundary = [to_coordinate(v) for v in vertices]
        services = [
            EmergencyService(
                type=s["type"],
                number=str(s["number"]),
                location=to_coordinate(s["location"]) if s.get("location") else None,
            )
            for s in _pick(raw, "emergency_services", "emergencyServices", default=[])
        ]
        return SafetyZone(
            id=zone_id,
            name=str(_pick(raw, "name", default=zone_id)),
            boundary=boundary,
            safety_level=_pick(raw, "safety_level", "safetyLevel"),
            description=str(_pick(raw, "description", default="")),
            emergency_services=services,
            risk_factors=list(_pick(raw, "risk_factors", "riskFactors", default=[])),
            safety_tips=list(_pick(raw, "safety_tips", "safetyTips", default=[])),
        )
    except (ValidationError, PydanticValidationError, KeyError, TypeError, AttributeError) as e:
        raise ValidationError(f"구역 {zone_id}: {e}", zone_id=zone_id) from e

def to_zones(raws: Iterable[Dict[str, Any]]) -> Tuple[List[SafetyZone], int]:
    """
    여러 구역을 변환합니다. 잘못된 구역은 경고 후 건너뜁니다.

    Returns:
        (변환된 구역 목록, 건너뛴 구역 수)
    """
    zones: List[SafetyZone] = []
    skipped = 0
    for raw in raws:
        try:
            zones.append(to_zone(raw))
        except ValidationError as e:
            skipped += 1
            log.warning(f"잘못된 구역 데이터 건너뜀 zone_id:{e.zone_id} error:{e}")
    return zones, skipped

def to_contact(raw: Dict[str, Any]) -> Contact:
    """원시 딕셔너리를 Contact로 변환합니다."""
    contact_id = _pick(raw, "id")
    phone = _pick(raw, "phone_number", "phoneNumber")
    if contact_id is None or phone is None:
        raise ValidationError(f"연락처 id 또는 전화번호 누락: {raw!r}")

    try:
        return Contact(
            id=str(contact_id),
            name=_pick(raw, "name"),
            phone_number=str(phone),
            relationship=_pick(raw, "relationship", default=""),
            is_primary=bool(_pick(raw, "is_primary", "isPrimary", default=False)),
        )
    except PydanticValidationError as e:
        raise ValidationError(f"잘못된 연락처: {e.errors()[0]['msg']}") from e

def zone_document(data: Any) -> List[Dict[str, Any]]:
    """
    구역 문서(API 응답 또는 파일)에서 구역 목록을 꺼냅니다.

    문서는 구역 배열이거나 {"zones": [...]} 객체입니다. 개별 구역의
    내용은 to_zones()에서 검증합니다.

    Raises:
        ValueError: 문서 구조가 스키마와 맞지 않는 경우
    """
    try:
        validate(instance=data, schema=ZONE_DOCUMENT_SCHEMA)
    except SchemaValidationError as e:
        log.error(f"구역 문서 스키마 검증 실패: {e.message}")
        raise ValueError(f"zone document schema validation failed: {e.message}") from e
    return data["zones"] if isinstance(data, dict) else data
