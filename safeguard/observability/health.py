"""
HTTP endpoints for SafeGuard.

This module implements health, readiness, metrics and info endpoints,
plus the small JSON surface the UI layer uses to classify locations,
drive the panic button and observe the dispatch queue.
"""

from datetime import datetime
from typing import List, Optional
from fastapi import FastAPI, HTTPException, Query
from fastapi.responses import Response, JSONResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from pydantic import BaseModel, Field
import time
from safeguard.settings import Settings
from safeguard.core.models import Coordinate, EmergencyType, utcnow
from safeguard.core.errors import PRECONDITION_MESSAGES
from safeguard.core.classifier import classify, find_zone, route_safety
from safeguard.core.scoring import ScoreContext, recommendation, safety_alerts, score
from safeguard.orchestrators.orchestrator import Orchestrator
from safeguard.observability.logging_setup import get_logger

log = get_logger("safeguard.http")

class LocationIn(BaseModel):
    """위치 입력 본문"""
    latitude: float = Field(ge=-90, le=90)
    longitude: float = Field(ge=-180, le=180)
    accuracy: float = Field(default=0.0, ge=0)
    timestamp: Optional[datetime] = None

    def to_coordinate(self) -> Coordinate:
        return Coordinate(
            latitude=self.latitude,
            longitude=self.longitude,
            accuracy=self.accuracy,
            timestamp=self.timestamp or utcnow(),
        )

class ScoreIn(LocationIn):
    """점수 계산 입력 본문 (시각 지정 가능)"""
    hour: Optional[int] = Field(default=None, ge=0, le=23)

class RouteIn(BaseModel):
    """경로 분석 입력 본문"""
    points: List[LocationIn] = Field(default_factory=list)

class PanicTriggerIn(BaseModel):
    """패닉 트리거 입력 본문 (선택)"""
    emergency_type: Optional[EmergencyType] = None

def _assessment_json(assessment, hour: int) -> dict:
    data = assessment.model_dump(mode="json")
    data["risk_level"] = assessment.risk_level
    data["recommendation"] = recommendation(assessment.score, assessment.factors)
    data["alerts"] = [a.model_dump() for a in safety_alerts(assessment, hour)]
    return data

def _panic_json(orch: Orchestrator) -> dict:
    data = orch.panic.session.model_dump(mode="json")
    error = orch.panic.last_error
    data["error"] = None if error is None else {
        "reason": error.reason,
        "title": error.title,
        "message": error.user_message,
    }
    return data

def create_app(settings: Settings, orch: Optional[Orchestrator] = None) -> FastAPI:
    """FastAPI 애플리케이션을 생성합니다."""
    app = FastAPI(
        title=settings.observability.service_name,
        version=settings.observability.build_version,
        description="SafeGuard Safety Zone Monitoring & Emergency Alert Service"
    )

    start_time = time.time()

    def runtime() -> Orchestrator:
        if orch is None:
            raise HTTPException(status_code=503, detail="Service not running")
        return orch

    @app.get("/health")
    async def health():
        """헬스 체크 엔드포인트"""
        return JSONResponse({
            "status": "ok",
            "service": settings.observability.service_name,
            "timestamp": time.time()
        })

    @app.get("/ready")
    async def ready():
        """레디니스 체크 엔드포인트"""
        if orch is None or not orch.ready:
            return JSONResponse(status_code=503, content={
                "status": "starting",
                "service": settings.observability.service_name,
                "timestamp": time.time()
            })
        return JSONResponse({
            "status": "ready",
            "service": settings.observability.service_name,
            "zones": len(orch.zones.current()),
            "zones_stale": orch.zones.is_stale,
            "timestamp": time.time()
        })

    @app.get("/metrics")
    async def metrics():
        """Prometheus 메트릭 엔드포인트"""
        if not settings.observability.metrics_enabled:
            raise HTTPException(status_code=503, detail="Metrics disabled")

        try:
            return Response(
                generate_latest(),
                media_type=CONTENT_TYPE_LATEST
            )
        except Exception as e:
            log.error(f"메트릭 생성 오류: {e}")
            raise HTTPException(status_code=500, detail="Metrics generation failed")

    @app.get("/info")
    async def info():
        """서비스 정보 엔드포인트"""
        uptime = time.time() - start_time
        return JSONResponse({
            "service": settings.observability.service_name,
            "version": settings.observability.build_version,
            "build_date": settings.observability.build_date,
            "uptime_seconds": int(uptime),
            "metrics_enabled": settings.observability.metrics_enabled,
            "log_level": settings.observability.log_level,
            "dry_run": settings.dry_run,
            "transport": settings.dispatch.transport,
        })

    @app.post("/classify")
    async def classify_location(body: LocationIn):
        """현재 구역 스냅샷으로 위치를 평가합니다 (알림 없음)."""
        o = runtime()
        location = body.to_coordinate()
        hour = o.local_time().hour
        return JSONResponse(_assessment_json(o.assess(location), hour))

    @app.post("/score")
    async def score_location(body: ScoreIn):
        """지정한 시각 기준으로 점수를 계산합니다."""
        o = runtime()
        location = body.to_coordinate()
        hour = body.hour if body.hour is not None else o.local_time().hour
        context = ScoreContext(hour=hour, location_accuracy_meters=location.accuracy)
        assessment = score(classify(location, o.zones.current()), context)
        return JSONResponse(_assessment_json(assessment, hour))

    @app.post("/route")
    async def route(body: RouteIn):
        """경로 지점들의 안전도를 분석합니다."""
        o = runtime()
        points = [p.to_coordinate() for p in body.points]
        return JSONResponse(route_safety(points, o.zones.current()).model_dump())

    @app.post("/location")
    async def submit_location(body: LocationIn):
        """위치를 파이프라인에 넣습니다 (지오펜스/패닉 위치 공유)."""
        o = runtime()
        accepted = o.submit_location(body.to_coordinate())
        return {"ok": accepted}

    @app.get("/zones")
    async def zones(lat: Optional[float] = Query(default=None, ge=-90, le=90),
                    lon: Optional[float] = Query(default=None, ge=-180, le=180),
                    radius_m: float = Query(default=settings.zones.nearby_radius_m, gt=0)):
        """구역 목록 (위치를 주면 반경 내 가까운 순)"""
        o = runtime()
        if lat is not None and lon is not None:
            items = o.zones.nearby(Coordinate(latitude=lat, longitude=lon), radius_m)
        else:
            items = o.zones.current()
        return JSONResponse({
            "count": len(items),
            "stale": o.zones.is_stale,
            "source": o.zones.source,
            "updated_at": o.zones.updated_at.isoformat() if o.zones.updated_at else None,
            "zones": [z.model_dump(mode="json") for z in items],
        })

    @app.get("/zones/{zone_id}")
    async def zone_detail(zone_id: str):
        """구역 상세"""
        zone = find_zone(runtime().zones.current(), zone_id)
        if zone is None:
            raise HTTPException(status_code=404, detail="Zone not found")
        return JSONResponse(zone.model_dump(mode="json"))

    @app.get("/panic")
    async def panic_state():
        """패닉 세션 상태"""
        return JSONResponse(_panic_json(runtime()))

    @app.post("/panic/trigger")
    async def panic_trigger(body: Optional[PanicTriggerIn] = None):
        """패닉 버튼 (카운트다운 시작 또는 취소)"""
        o = runtime()
        await o.panic.trigger(body.emergency_type if body else None)
        return JSONResponse(_panic_json(o))

    @app.post("/panic/deactivate")
    async def panic_deactivate():
        """긴급 모드 해제 요청"""
        o = runtime()
        await o.panic.request_deactivation()
        return JSONResponse(_panic_json(o))

    @app.post("/panic/confirm")
    async def panic_confirm():
        """긴급 모드 해제 확인"""
        o = runtime()
        await o.panic.confirm_deactivation()
        return JSONResponse(_panic_json(o))

    @app.get("/panic/messages")
    async def panic_messages():
        """전제 조건 실패 안내 문구"""
        return JSONResponse({
            reason: {"title": title, "message": message}
            for reason, (title, message) in PRECONDITION_MESSAGES.items()
        })

    @app.get("/queue")
    async def queue_status():
        """발송 큐 상태와 작업 목록"""
        o = runtime()
        return JSONResponse({
            "status": o.queue.status().model_dump(),
            "tasks": [t.model_dump(mode="json") for t in o.queue.tasks()],
        })

    @app.post("/queue/drain")
    async def queue_drain():
        """즉시 drain을 수행합니다."""
        o = runtime()
        result = await o.drain_once()
        return JSONResponse({
            "attempted": result.attempted,
            "delivered": result.delivered,
            "retrying": result.retrying,
            "skipped_not_due": result.skipped_not_due,
            "failed_permanent": [
                {"task_id": f.task.id, "type": f.task.type, "title": f.title, "message": f.user_message}
                for f in result.failed_permanent
            ],
            "status": o.queue.status().model_dump(),
        })

    @app.post("/queue/{task_id}/dismiss")
    async def queue_dismiss(task_id: str):
        """영구 실패 작업 확인 처리"""
        if not await runtime().queue.dismiss(task_id):
            raise HTTPException(status_code=404, detail="Failed task not found")
        return {"ok": True}

    @app.post("/queue/{task_id}/requeue")
    async def queue_requeue(task_id: str):
        """영구 실패 작업 재등록"""
        o = runtime()
        fresh = await o.queue.requeue(task_id)
        if fresh is None:
            raise HTTPException(status_code=404, detail="Failed task not found")
        o.request_drain()
        return {"ok": True, "task_id": fresh.id}

    @app.get("/geofence/events")
    async def geofence_events(limit: int = Query(default=50, ge=1, le=50)):
        """최근 안전 등급 전환 이력 (최신 순)"""
        events = runtime().geofence.history[:limit]
        return JSONResponse({"events": [e.model_dump(mode="json") for e in events]})

    @app.get("/")
    async def root():
        """루트 엔드포인트"""
        return JSONResponse({
            "service": settings.observability.service_name,
            "version": settings.observability.build_version,
            "endpoints": {
                "health": "/health",
                "ready": "/ready",
                "metrics": "/metrics",
                "info": "/info",
                "classify": "/classify",
                "score": "/score",
                "route": "/route",
                "location": "/location",
                "zones": "/zones",
                "panic": "/panic",
                "queue": "/queue",
                "geofence_events": "/geofence/events"
            }
        })

    return app
