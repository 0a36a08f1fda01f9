# safeguard/settings.py
from __future__ import annotations
from typing import List
from pydantic import BaseModel, Field

class MqttCommon(BaseModel):
    host: str = "localhost"
    port: int = 1883
    username: str | None = None
    password: str | None = None
    tls: bool = False
    client_id: str | None = None
    keepalive: int = 30
    clean_session: bool = False
    lwt_topic: str = "safeguard/state"
    lwt_payload: str = "offline"
    lwt_qos: int = 1
    lwt_retain: bool = True

class AlertMQTT(MqttCommon):
    topic_prefix: str = "safeguard/alerts"
    qos: int = 1
    retain: bool = False

class LocationMQTT(MqttCommon):
    enabled: bool = False
    topic: str = "safeguard/location/#"

class HAConfig(BaseModel):
    enabled: bool = False
    base_url: str = "http://supervisor/core"
    token: str = ""
    timeout_sec: int = 10
    device_tracker: str = ""                   # device_tracker.<id>
    notify_service: str = ""                   # mobile_app_<id>

class ZonesConfig(BaseModel):
    api_url: str = ""                          # 비어 있으면 파일 소스만 사용
    api_token: str = ""
    file_path: str = "/data/safety_zones.json"
    refresh_interval_sec: int = 900
    max_age_sec: int = 86400                   # 24시간 이후 stale 표시
    nearby_radius_m: float = 5000.0

class PanicConfig(BaseModel):
    countdown_sec: int = 3
    share_location_updates: bool = True

class DispatchConfig(BaseModel):
    transport: str = "mqtt"                    # mqtt | homeassistant
    task_store_path: str = "/data/alert_tasks.db"
    max_attempts: int = 5
    backoff_base_sec: float = 1.0
    backoff_max_sec: float = 60.0
    drain_interval_sec: float = 5.0

class ContactConfig(BaseModel):
    id: str
    name: str
    phone_number: str
    relationship: str = ""
    is_primary: bool = False

class ProfileConfig(BaseModel):
    user_id: str = "local-user"
    name: str = "Traveller"
    emergency_contacts: List[ContactConfig] = Field(default_factory=list)

class Observability(BaseModel):
    http_port: int = 8099
    metrics_enabled: bool = True
    service_name: str = "SafeGuard"
    build_version: str = "0.3.0"
    build_date: str = "2026-10-01"
    log_level: str = "INFO"
    json_logs: bool = False

class Reliability(BaseModel):
    location_queue_maxsize: int = 1000
    drop_on_full: bool = True                  # 위치는 최신값이 중요하므로 가득 차면 버림

class Settings(BaseModel):
    dry_run: bool = False

    # 하위 섹션 (기본값/팩토리로 누락 방지)
    alert_mqtt: AlertMQTT = Field(default_factory=AlertMQTT)
    location_mqtt: LocationMQTT = Field(default_factory=LocationMQTT)
    ha: HAConfig = Field(default_factory=HAConfig)
    zones: ZonesConfig = Field(default_factory=ZonesConfig)
    panic: PanicConfig = Field(default_factory=PanicConfig)
    dispatch: DispatchConfig = Field(default_factory=DispatchConfig)
    profile: ProfileConfig = Field(default_factory=ProfileConfig)
    observability: Observability = Field(default_factory=Observability)
    reliability: Reliability = Field(default_factory=Reliability)
