"""
Safety score aggregation for SafeGuard.

This module combines a zone classification with time-of-day and
location-accuracy signals into a composite score and a ranked list
of contributing factors.
"""

from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, Field
from safeguard.core.models import Coordinate, Factor, SafetyAssessment, risk_bucket

# 등급별 기본 점수
BASE_SCORES = {
    "safe": 70,
    "caution": 40,
    "restricted": 10
}

# 등급별 구역 요인
ZONE_FACTORS = {
    "safe": ("Safe Zone", 20, "Inside a monitored safe zone"),
    "caution": ("Caution Zone", -20, "Area with reported risk factors"),
    "restricted": ("Restricted Zone", -40, "Area not recommended for visitors"),
}

DAYLIGHT_HOURS = (6, 18)                 # 양 끝 포함
DAYLIGHT_IMPACT = 10
NIGHT_IMPACT = -15
ACCURATE_LOCATION_METERS = 15.0
ACCURATE_LOCATION_IMPACT = 5

LOW_SCORE_ALERT_THRESHOLD = 40

class ScoreContext(BaseModel):
    """점수 계산 문맥"""
    hour: int = Field(ge=0, le=23)
    location_accuracy_meters: float = Field(ge=0)

    @classmethod
    def for_location(cls, location: Coordinate, now: Optional[datetime] = None) -> "ScoreContext":
        """
        위치의 정확도와 시각으로 문맥을 만듭니다.

        now가 없으면 위치 시각을 로컬 시간대로 바꿔 시(hour)를 구합니다.
        """
        when = now or location.timestamp.astimezone()
        return cls(hour=when.hour, location_accuracy_meters=location.accuracy)

class SafetyAlert(BaseModel):
    """화면에 표시할 안전 알림"""
    type: str
    title: str
    message: str
    priority: str
    actions: List[str] = Field(default_factory=list)

def clamp_score(value: int) -> int:
    return max(0, min(100, value))

def score_factors(level: str, context: ScoreContext) -> List[Factor]:
    """
    점수 요인 목록을 계산합니다.

    Returns:
        영향의 절댓값 기준으로 정렬된 요인 목록 (동률은 계산 순서 유지)
    """
    label, impact, description = ZONE_FACTORS[level]
    factors = [Factor(label=label, impact=impact, description=description)]

    start, end = DAYLIGHT_HOURS
    if start <= context.hour <= end:
        factors.append(Factor(label="Daylight Hours", impact=DAYLIGHT_IMPACT,
                              description="Better visibility and activity"))
    else:
        factors.append(Factor(label="Night Time", impact=NIGHT_IMPACT,
                              description="Reduced visibility and activity"))

    # 정확도가 낮아도 감점하지 않음
    if context.location_accuracy_meters <= ACCURATE_LOCATION_METERS:
        factors.append(Factor(label="Accurate Location", impact=ACCURATE_LOCATION_IMPACT,
                              description="Location fix is precise"))

    return sorted(factors, key=lambda f: abs(f.impact), reverse=True)

def score(assessment: SafetyAssessment, context: ScoreContext) -> SafetyAssessment:
    """
    평가 결과에 점수와 요인을 채웁니다.

    Args:
        assessment: classify() 결과
        context: 시간/정확도 문맥

    Returns:
        score와 factors가 채워진 새 평가 결과
    """
    factors = score_factors(assessment.safety_level, context)
    total = BASE_SCORES[assessment.safety_level] + sum(f.impact for f in factors)

    return assessment.model_copy(update={
        "score": clamp_score(total),
        "factors": factors,
    })

def route_recommendation(value: float) -> str:
    """점수 기반 경로/위치 권고 문구"""
    if value >= 80:
        return "This route is generally safe for tourists."
    if value >= 50:
        return "This route requires caution. Consider alternative paths."
    return "This route is not recommended. Please choose a safer alternative."

def recommendation(value: int, factors: List[Factor]) -> str:
    """
    점수와 요인으로 상세 권고 문구를 생성합니다.
    """
    text = route_recommendation(value)

    negative = [f.description or f.label for f in factors if f.impact < 0]
    positive = [f.description or f.label for f in factors if f.impact > 0]

    if negative:
        text += f" Consider: {', '.join(negative)}."
    if positive:
        text += f" Advantages: {', '.join(positive)}."
    return text

def safety_alerts(assessment: SafetyAssessment, hour: int) -> List[SafetyAlert]:
    """구역, 점수, 시간대에 따른 화면 알림 목록을 생성합니다."""
    alerts: List[SafetyAlert] = []

    if assessment.safety_level == "restricted":
        alerts.append(SafetyAlert(
            type="danger",
            title="Restricted Area Warning",
            message="You have entered a restricted area. Please leave immediately.",
            priority="high",
            actions=["Call Emergency", "Get Directions Out", "Share Location"],
        ))
    elif assessment.safety_level == "caution":
        alerts.append(SafetyAlert(
            type="warning",
            title="Caution Area",
            message="Exercise extra caution in this area. Stay alert and avoid isolated spots.",
            priority="medium",
            actions=["View Safety Tips", "Share Location", "Find Safe Route"],
        ))

    if assessment.score < LOW_SCORE_ALERT_THRESHOLD:
        alerts.append(SafetyAlert(
            type="warning",
            title="Low Safety Score",
            message=f"Current safety score: {assessment.score}/100. Consider moving to a safer area.",
            priority="medium",
            actions=["Find Safe Route", "Call Contact", "View Recommendations"],
        ))

    start, end = DAYLIGHT_HOURS
    if not (start <= hour <= end) and assessment.safety_level != "safe":
        alerts.append(SafetyAlert(
            type="info",
            title="Night Safety Reminder",
            message="It's late. Consider staying in well-lit, populated areas.",
            priority="low",
            actions=["Find Accommodation", "Call Taxi", "Share Location"],
        ))

    return alerts

__all__ = [
    "BASE_SCORES", "ScoreContext", "SafetyAlert", "score", "score_factors",
    "recommendation", "route_recommendation", "safety_alerts", "risk_bucket",
]
