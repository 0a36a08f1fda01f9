"""
Core domain models for SafeGuard.

This module defines the core domain models using Pydantic v2
for type safety and validation.
"""

import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional
from pydantic import BaseModel, ConfigDict, Field, field_validator

# 안전 등급 / 위험 등급 타입 정의
SafetyLevel = Literal["safe", "caution", "restricted"]
RiskLevel = Literal["low", "medium", "high", "critical"]

AlertType = Literal["emergency_alert", "location_update", "geofence_notice"]
Priority = Literal["high", "medium", "low"]
TaskStatus = Literal["pending", "in_flight", "delivered", "failed_permanent"]

PanicState = Literal["idle", "counting_down", "activating", "active", "deactivating"]
PreconditionReason = Literal["location_required", "no_contacts", "activation_failed"]
EmergencyType = Literal["medical", "safety", "lost", "accident", "custom"]

# 제한 등급 순서 (낮음 -> 높음)
LEVEL_ORDER: Dict[str, int] = {
    "safe": 0,
    "caution": 1,
    "restricted": 2
}

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

def risk_bucket(score: int) -> RiskLevel:
    """
    점수로부터 표시용 위험 등급을 계산합니다.

    위험 등급은 이 함수로만 계산합니다.
    """
    if score >= 80:
        return "low"
    if score >= 60:
        return "medium"
    if score >= 40:
        return "high"
    return "critical"

class Coordinate(BaseModel):
    """위치 좌표 모델 (생성 후 불변)"""
    model_config = ConfigDict(frozen=True)

    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: float = Field(default=0.0, ge=0)
    timestamp: datetime = Field(default_factory=utcnow)

    @field_validator("timestamp")
    @classmethod
    def _aware_timestamp(cls, value: datetime) -> datetime:
        # 오프셋 없는 시각은 UTC로 간주
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)

class EmergencyService(BaseModel):
    """구역 인근 긴급 서비스"""
    model_config = ConfigDict(frozen=True)

    type: str
    number: str
    location: Optional[Coordinate] = None

class SafetyZone(BaseModel):
    """안전 구역 모델 (읽기 전용 참조 데이터)"""
    model_config = ConfigDict(frozen=True)

    id: str
    name: str
    boundary: List[Coordinate] = Field(default_factory=list)
    safety_level: SafetyLevel
    description: str = ""
    emergency_services: List[EmergencyService] = Field(default_factory=list)
    risk_factors: List[str] = Field(default_factory=list)
    safety_tips: List[str] = Field(default_factory=list)

class Factor(BaseModel):
    """점수에 기여한 요인"""
    label: str
    impact: int
    description: Optional[str] = None

class SafetyAssessment(BaseModel):
    """위치 안전 평가 결과"""
    location: Coordinate
    safety_level: SafetyLevel
    score: int = Field(ge=0, le=100)
    matched_zone: Optional[SafetyZone] = None
    factors: List[Factor] = Field(default_factory=list)
    message: str = ""

    @property
    def risk_level(self) -> RiskLevel:
        return risk_bucket(self.score)

class AlertTask(BaseModel):
    """발송 큐가 소유하는 알림 작업"""
    id: str = Field(default_factory=lambda: uuid.uuid4().hex)
    type: AlertType
    priority: Priority
    payload: Dict[str, Any] = Field(default_factory=dict)
    created_at: datetime = Field(default_factory=utcnow)
    attempts: int = Field(default=0, ge=0)
    next_retry_at: Optional[datetime] = None
    status: TaskStatus = "pending"
    last_error: Optional[str] = None

class PanicSession(BaseModel):
    """패닉 세션 상태 (사용자 세션당 하나)"""
    state: PanicState = "idle"
    countdown_remaining: int = 0
    started_at: Optional[datetime] = None
    activated_at: Optional[datetime] = None
    alert_task_id: Optional[str] = None
    emergency_type: Optional[EmergencyType] = None
    failure_reason: Optional[PreconditionReason] = None

class Contact(BaseModel):
    """긴급 연락처"""
    id: str
    name: str
    phone_number: str
    relationship: str = ""
    is_primary: bool = False

class Profile(BaseModel):
    """사용자 프로필"""
    user_id: str
    name: str
    emergency_contacts: List[Contact] = Field(default_factory=list)

class GeofenceEvent(BaseModel):
    """안전 등급 전환 이벤트"""
    type: Literal["enter", "exit"]
    zone: Optional[SafetyZone] = None
    previous_level: SafetyLevel
    new_level: SafetyLevel
    worsened: bool
    location: Coordinate
    timestamp: datetime = Field(default_factory=utcnow)
    seconds_in_previous_zone: Optional[float] = None

class QueueStatus(BaseModel):
    """발송 큐 상태 (UI 관찰용)"""
    pending: int = 0
    in_flight: int = 0
    failed_permanent: int = 0
    sync_state: Literal["idle", "pending_sync", "attention_required"] = "idle"
    message: str = ""
