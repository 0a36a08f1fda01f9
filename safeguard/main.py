# safeguard/main.py
import os, asyncio, json, signal
from contextlib import AsyncExitStack
from typing import Optional
import uvicorn
from safeguard.settings import Settings, ContactConfig
from safeguard.core.errors import ValidationError
from safeguard.core.normalize import to_contact
from safeguard.core.geofence import GeofenceMonitor
from safeguard.core.panic import PanicStateMachine
from safeguard.common.scheduler import AsyncioScheduler
from safeguard.dispatch.queue import AlertDispatchQueue
from safeguard.services.zone_cache import ZoneCache
from safeguard.services.location import FallbackLocationSource
from safeguard.adapters.storage import SQLiteTaskStore, InMemoryTaskStore
from safeguard.adapters.mqtt_local import DryRunAlertSender, MqttAlertSender
from safeguard.adapters.mqtt_remote import MqttLocationWatcher
from safeguard.adapters.homeassistant import HAClient, HALocationSource, HANotifySender
from safeguard.adapters.zones import FileZoneSource, HttpZoneSource
from safeguard.adapters.profile import StaticProfileStore
from safeguard.orchestrators.orchestrator import Orchestrator
from safeguard.observability.health import create_app
from safeguard.observability.logging_setup import setup_logging, get_logger

def _b(name, default=False): return os.getenv(name, str(default)).lower() in ("1","true","yes","on")

def _contacts_from_env(raw: Optional[str], default):
    """EMERGENCY_CONTACTS(JSON 배열)를 연락처 설정으로 변환합니다."""
    if not raw:
        return default
    contacts = []
    for item in json.loads(raw):
        try:
            contacts.append(ContactConfig(**to_contact(item).model_dump()))
        except ValidationError as e:
            get_logger("safeguard.main").warning(f"잘못된 긴급 연락처 무시: {e}")
    return contacts

def build_settings() -> Settings:
    s = Settings()
    # 플래그
    s.dry_run = _b("DRY_RUN", s.dry_run)

    # 알림 MQTT
    s.alert_mqtt.host = os.getenv("ALERT_MQTT_HOST", s.alert_mqtt.host)
    s.alert_mqtt.port = int(os.getenv("ALERT_MQTT_PORT", s.alert_mqtt.port))
    s.alert_mqtt.username = os.getenv("ALERT_MQTT_USERNAME", s.alert_mqtt.username)
    s.alert_mqtt.password = os.getenv("ALERT_MQTT_PASSWORD", s.alert_mqtt.password)
    s.alert_mqtt.client_id = os.getenv("ALERT_MQTT_CLIENT_ID", s.alert_mqtt.client_id)
    s.alert_mqtt.tls = _b("ALERT_MQTT_TLS", s.alert_mqtt.tls)
    s.alert_mqtt.topic_prefix = os.getenv("ALERT_TOPIC_PREFIX", s.alert_mqtt.topic_prefix)

    # 위치 MQTT
    s.location_mqtt.enabled = _b("LOCATION_MQTT_ENABLED", s.location_mqtt.enabled)
    s.location_mqtt.host = os.getenv("LOCATION_MQTT_HOST", s.location_mqtt.host)
    s.location_mqtt.port = int(os.getenv("LOCATION_MQTT_PORT", s.location_mqtt.port))
    s.location_mqtt.username = os.getenv("LOCATION_MQTT_USERNAME", s.location_mqtt.username)
    s.location_mqtt.password = os.getenv("LOCATION_MQTT_PASSWORD", s.location_mqtt.password)
    s.location_mqtt.tls = _b("LOCATION_MQTT_TLS", s.location_mqtt.tls)
    s.location_mqtt.topic = os.getenv("LOCATION_TOPIC", s.location_mqtt.topic)

    # HA
    s.ha.enabled = _b("HA_ENABLED", s.ha.enabled)
    s.ha.base_url = os.getenv("HA_BASE_URL", s.ha.base_url)
    s.ha.token = os.getenv("HA_TOKEN", os.getenv("SUPERVISOR_TOKEN", s.ha.token))
    s.ha.device_tracker = os.getenv("HA_DEVICE_TRACKER", s.ha.device_tracker)
    s.ha.notify_service = os.getenv("HA_NOTIFY_SERVICE", s.ha.notify_service)

    # 구역
    s.zones.api_url = os.getenv("ZONES_API_URL", s.zones.api_url)
    s.zones.api_token = os.getenv("ZONES_API_TOKEN", s.zones.api_token)
    s.zones.file_path = os.getenv("ZONES_FILE", s.zones.file_path)
    s.zones.refresh_interval_sec = int(os.getenv("ZONES_REFRESH_SEC", s.zones.refresh_interval_sec))

    # 패닉
    s.panic.countdown_sec = int(os.getenv("PANIC_COUNTDOWN_SEC", s.panic.countdown_sec))
    s.panic.share_location_updates = _b("PANIC_SHARE_LOCATION", s.panic.share_location_updates)

    # 발송
    s.dispatch.transport = os.getenv("DISPATCH_TRANSPORT", s.dispatch.transport)
    s.dispatch.task_store_path = os.getenv("TASK_STORE_PATH", s.dispatch.task_store_path)
    s.dispatch.max_attempts = int(os.getenv("DISPATCH_MAX_ATTEMPTS", s.dispatch.max_attempts))
    s.dispatch.backoff_base_sec = float(os.getenv("DISPATCH_BACKOFF_BASE_SEC", s.dispatch.backoff_base_sec))
    s.dispatch.backoff_max_sec = float(os.getenv("DISPATCH_BACKOFF_MAX_SEC", s.dispatch.backoff_max_sec))
    s.dispatch.drain_interval_sec = float(os.getenv("DISPATCH_DRAIN_SEC", s.dispatch.drain_interval_sec))

    # 프로필
    s.profile.user_id = os.getenv("PROFILE_USER_ID", s.profile.user_id)
    s.profile.name = os.getenv("PROFILE_NAME", s.profile.name)
    s.profile.emergency_contacts = _contacts_from_env(os.getenv("EMERGENCY_CONTACTS"), s.profile.emergency_contacts)

    # 관측성
    s.observability.metrics_enabled = _b("METRICS_ENABLED", s.observability.metrics_enabled)
    s.observability.http_port = int(os.getenv("HTTP_PORT", s.observability.http_port))
    s.observability.log_level = os.getenv("LOG_LEVEL", s.observability.log_level)
    s.observability.json_logs = _b("JSON_LOGS", s.observability.json_logs)

    # 신뢰성
    s.reliability.location_queue_maxsize = int(os.getenv("LOCATION_QUEUE_MAXSIZE", s.reliability.location_queue_maxsize))

    return s

async def start_http(settings: Settings, orch: Orchestrator) -> asyncio.Task:
    app = create_app(settings, orch)
    return asyncio.create_task(uvicorn.Server(
        uvicorn.Config(app, host="0.0.0.0", port=settings.observability.http_port, log_level="info")
    ).serve())

async def main():
    s = build_settings()
    setup_logging(s.observability.log_level, s.observability.json_logs)
    log = get_logger("safeguard.main")
    log.info(f"설정 로드 완료 dry_run:{s.dry_run} transport:{s.dispatch.transport}")

    async with AsyncExitStack() as stack:
        ha: Optional[HAClient] = None
        if s.ha.enabled:
            ha = await stack.enter_async_context(HAClient(s.ha.base_url, s.ha.token, s.ha.timeout_sec))

        # 발송 협력자 + 작업 저장소
        if s.dry_run:
            sender = DryRunAlertSender(s.alert_mqtt.topic_prefix)
            storage = InMemoryTaskStore()
        else:
            if s.dispatch.transport == "homeassistant":
                if ha is None or not s.ha.notify_service:
                    raise SystemExit("homeassistant 발송에는 HA_ENABLED와 HA_NOTIFY_SERVICE가 필요합니다")
                sender = HANotifySender(ha, s.ha.notify_service)
            else:
                sender = MqttAlertSender(
                    broker_host=s.alert_mqtt.host,
                    broker_port=s.alert_mqtt.port,
                    topic_prefix=s.alert_mqtt.topic_prefix,
                    username=s.alert_mqtt.username,
                    password=s.alert_mqtt.password,
                    tls=s.alert_mqtt.tls,
                    client_id=s.alert_mqtt.client_id,
                    keepalive=s.alert_mqtt.keepalive,
                    lwt_topic=s.alert_mqtt.lwt_topic,
                    lwt_payload_offline=s.alert_mqtt.lwt_payload,
                    qos=s.alert_mqtt.qos,
                    retain=s.alert_mqtt.retain,
                )
                stack.push_async_callback(sender.stop)
            storage = SQLiteTaskStore(s.dispatch.task_store_path)
            await storage.init()
        log.info(f"발송 어댑터 생성 완료 sender:{type(sender).__name__}")

        queue = AlertDispatchQueue(
            sender, storage,
            max_attempts=s.dispatch.max_attempts,
            backoff_base=s.dispatch.backoff_base_sec,
            backoff_max=s.dispatch.backoff_max_sec,
        )

        # 구역
        file_source = FileZoneSource(s.zones.file_path)
        api_source = HttpZoneSource(s.zones.api_url, s.zones.api_token) if s.zones.api_url else None
        zones = ZoneCache(api_source, file_source, max_age_sec=s.zones.max_age_sec)

        # 위치
        watcher: Optional[MqttLocationWatcher] = None
        locations = FallbackLocationSource()
        if s.location_mqtt.enabled:
            watcher = MqttLocationWatcher(
                host=s.location_mqtt.host,
                port=s.location_mqtt.port,
                topic=s.location_mqtt.topic,
                username=s.location_mqtt.username,
                password=s.location_mqtt.password,
                tls=s.location_mqtt.tls,
                client_id=s.location_mqtt.client_id,
                keepalive=s.location_mqtt.keepalive,
                clean_session=s.location_mqtt.clean_session,
                lwt_topic=s.location_mqtt.lwt_topic,
                lwt_payload=s.location_mqtt.lwt_payload,
                lwt_qos=s.location_mqtt.lwt_qos,
                lwt_retain=s.location_mqtt.lwt_retain,
            )
            locations.add(watcher)
        if ha is not None and s.ha.device_tracker:
            locations.add(HALocationSource(ha, s.ha.device_tracker))

        scheduler = AsyncioScheduler()
        stack.push_async_callback(scheduler.close)

        panic = PanicStateMachine(
            scheduler, locations, StaticProfileStore.from_config(s.profile), queue,
            countdown_sec=s.panic.countdown_sec,
            share_location_updates=s.panic.share_location_updates,
        )
        if not s.profile.emergency_contacts:
            log.warning("긴급 연락처가 설정되지 않았습니다. 패닉 버튼이 활성화되지 않습니다.")

        geofence = GeofenceMonitor(zones, queue)

        orch = Orchestrator(
            zones, queue, geofence, panic,
            watcher=watcher,
            drain_interval_sec=s.dispatch.drain_interval_sec,
            zone_refresh_sec=s.zones.refresh_interval_sec,
            queue_maxsize=s.reliability.location_queue_maxsize,
            drop_on_full=s.reliability.drop_on_full,
        )
        # HTTP로 들어온 위치도 현재 위치로 사용
        locations.add(orch)
        log.info("오케스트레이터 생성 완료")

        http_task = None
        if s.observability.metrics_enabled:
            http_task = await start_http(s, orch)
            log.info("HTTP 서버 시작됨")

        stop = asyncio.Future()
        try:
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGTERM, signal.SIGINT):
                try: loop.add_signal_handler(sig, lambda: (not stop.done()) and stop.set_result(True))
                except NotImplementedError: pass
        except RuntimeError: pass

        log.info("오케스트레이터 시작")
        orch_task = asyncio.create_task(orch.start())
        await asyncio.wait([stop, orch_task], return_when=asyncio.FIRST_COMPLETED)
        if orch_task.done() and not orch_task.cancelled() and orch_task.exception():
            log.opt(exception=orch_task.exception()).error("오케스트레이터 비정상 종료")

        if watcher is not None:
            await watcher.stop()
        await orch.stop()
        orch_task.cancel()
        if http_task: http_task.cancel()
        log.info("종료")

def run():
    asyncio.run(main())

if __name__ == "__main__":
    run()
