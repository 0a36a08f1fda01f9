"""
Error taxonomy for SafeGuard.

Validation errors are recovered locally, precondition errors are
surfaced to the user without retry, delivery errors are retried by
the dispatch queue and permanent failures are surfaced once the
attempt cap is exceeded.
"""

from typing import Optional
from safeguard.core.models import AlertTask, PreconditionReason

# 사용자에게 보여줄 안내 문구
PRECONDITION_MESSAGES = {
    "location_required": (
        "Location Required",
        "Location access is required for emergency alerts. Please enable location services."
    ),
    "no_contacts": (
        "No Emergency Contacts",
        "Please add emergency contacts in your profile before using the panic button."
    ),
    "activation_failed": (
        "Emergency Alert Failed",
        "Failed to activate emergency mode. Please call emergency services directly."
    ),
}

PERMANENT_FAILURE_MESSAGE = (
    "Alert Not Delivered",
    "We could not deliver this alert after several attempts. "
    "Please call your emergency contacts or local emergency services directly."
)

class SafetyCoreError(Exception):
    """SafeGuard 코어 예외의 기반 클래스"""

class ValidationError(SafetyCoreError):
    """잘못된 구역/좌표 데이터"""

    def __init__(self, message: str, zone_id: Optional[str] = None):
        super().__init__(message)
        self.zone_id = zone_id

class PreconditionError(SafetyCoreError):
    """패닉 활성화 전제 조건 실패 (재시도하지 않음)"""

    def __init__(self, reason: PreconditionReason):
        title, detail = PRECONDITION_MESSAGES[reason]
        super().__init__(f"{reason}: {detail}")
        self.reason = reason
        self.title = title
        self.user_message = detail

class DeliveryError(SafetyCoreError):
    """일시적인 발송 실패 (백오프로 재시도)"""

class PermanentFailure(SafetyCoreError):
    """최대 시도 횟수 초과로 더 이상 재시도하지 않는 작업"""

    def __init__(self, task: AlertTask):
        super().__init__(
            f"task {task.id} ({task.type}) failed after {task.attempts} attempts: {task.last_error}"
        )
        self.task = task
        self.title, self.user_message = PERMANENT_FAILURE_MESSAGE
