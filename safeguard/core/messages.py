"""
User-facing message templates for SafeGuard.

This module renders the short texts attached to assessments and the
emergency message carried by panic alert payloads.
"""

from datetime import datetime
from typing import Dict, Iterable, Optional
from safeguard.core.models import Contact, Coordinate, Profile

# 지역 긴급 번호
EMERGENCY_NUMBERS: Dict[str, str] = {
    "police": "100",
    "medical": "108",
    "fire": "101",
    "tourist_helpline": "1363",
    "women_helpline": "1091",
    "child_helpline": "1098",
}

SAFETY_MESSAGES: Dict[str, str] = {
    "safe": "You are in a safe zone. Enjoy your visit!",
    "caution": "Exercise caution in this area. Stay alert and avoid isolated areas.",
    "restricted": "This is a restricted area. Please leave immediately and contact authorities if needed.",
}

MESSAGE_TEMPLATES: Dict[str, str] = {
    "medical": "MEDICAL EMERGENCY: I need immediate medical assistance. Please call emergency services and come to my location.",
    "safety": "SAFETY EMERGENCY: I am in danger and need help immediately. Please contact police and emergency services.",
    "lost": "HELP: I am lost and need assistance finding my way back. Please help me or contact local authorities.",
    "accident": "ACCIDENT: I have been in an accident and need help. Please call emergency services immediately.",
    "custom": "EMERGENCY: I need help immediately. Please contact emergency services and come to my assistance.",
}

def safety_message(level: str) -> str:
    """안전 등급별 안내 문구를 반환합니다."""
    return SAFETY_MESSAGES.get(level, "Safety status unknown. Please exercise caution.")

def maps_url(location: Coordinate) -> str:
    """지도 링크를 생성합니다."""
    return f"https://maps.google.com/?q={location.latitude},{location.longitude}"

def emergency_message(location: Coordinate, profile: Profile,
                      *, when: datetime, template: Optional[str] = None) -> str:
    """
    긴급 연락처로 보낼 메시지를 생성합니다.

    Args:
        location: 현재 위치
        profile: 사용자 프로필
        when: 발생 시각
        template: MESSAGE_TEMPLATES 키 (None이면 기본 형식)

    Returns:
        메시지 본문
    """
    if template is not None:
        headline = MESSAGE_TEMPLATES.get(template, MESSAGE_TEMPLATES["custom"])
    else:
        headline = f"EMERGENCY ALERT: {profile.name} needs immediate help!"

    lines = [
        headline,
        "",
        f"Location: {location.latitude:.6f}, {location.longitude:.6f}",
        f"Time: {when.strftime('%Y-%m-%d %H:%M:%S %Z')}",
        "",
        f"View on map: {maps_url(location)}",
        "",
        "Emergency Numbers:",
        f"Police: {EMERGENCY_NUMBERS['police']}",
        f"Medical: {EMERGENCY_NUMBERS['medical']}",
        f"Tourist Helpline: {EMERGENCY_NUMBERS['tourist_helpline']}",
    ]
    return "\n".join(lines)

def location_update_message(location: Coordinate, when: datetime) -> str:
    """긴급 상황 중 위치 갱신 메시지"""
    return (f"LOCATION UPDATE: I am now at {location.latitude:.6f}, {location.longitude:.6f}. "
            f"Time: {when.strftime('%Y-%m-%d %H:%M:%S %Z')}")

def order_contacts(contacts: Iterable[Contact]) -> list[Contact]:
    """주 연락처를 먼저 배치합니다."""
    contacts = list(contacts)
    return [c for c in contacts if c.is_primary] + [c for c in contacts if not c.is_primary]
