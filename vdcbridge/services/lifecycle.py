# vdcbridge/services/lifecycle.py
"""
vApp/VM 상태 머신.

요청 처리기는 클러스터 호출 전에 가드를 검사하고, 호출이 끝나면 *진행 중* 상태
(POWERING_ON/POWERING_OFF)만 기록합니다. 최종 상태(POWERED_ON 등)는 클러스터
상태를 감시하는 별도 프로세스가 기록합니다.
"""
from typing import Iterable, Optional

from vdcbridge.services.exceptions import (
    InvalidTransitionError,
    ResourceConflictError,
    RunningVMsPresentError,
)

INSTANTIATING = "INSTANTIATING"
RESOLVED = "RESOLVED"
DEPLOYED = "DEPLOYED"
FAILED = "FAILED"
POWERING_ON = "POWERING_ON"
POWERED_ON = "POWERED_ON"
POWERING_OFF = "POWERING_OFF"
POWERED_OFF = "POWERED_OFF"
STOPPED = "STOPPED"
DELETING = "DELETING"
DELETED = "DELETED"

ALL_STATUSES = frozenset({
    INSTANTIATING, RESOLVED, DEPLOYED, FAILED, POWERING_ON, POWERED_ON,
    POWERING_OFF, POWERED_OFF, STOPPED, DELETING, DELETED,
})

POWER_ON = "powerOn"
POWER_OFF = "powerOff"

_DELETION_STATES = frozenset({DELETING, DELETED})

# 상태 전이 그래프. 전원 가드와 삭제 가드는 모두 이 표에서 판정합니다.
# 진행 중 상태(POWERING_*)로의 전이는 요청 처리기가, 나머지는 상태 감시 프로세스가 기록합니다.
# DELETING으로의 전이는 삭제 상태가 아닌 모든 상태에서 허용되므로 can_transition이 따로 처리합니다.
_TRANSITIONS = {
    INSTANTIATING: {DEPLOYED, FAILED, RESOLVED, POWERING_ON, POWERING_OFF},
    RESOLVED: {DEPLOYED, FAILED, POWERING_ON, POWERING_OFF},
    DEPLOYED: {POWERING_ON, POWERING_OFF},
    FAILED: {POWERING_ON, POWERING_OFF},
    POWERING_ON: {POWERED_ON, DEPLOYED, FAILED, POWERING_OFF},
    POWERED_ON: {POWERING_OFF},
    POWERING_OFF: {POWERED_OFF, DEPLOYED, FAILED, POWERING_ON},
    POWERED_OFF: {POWERING_ON},
    STOPPED: {POWERING_ON},
    DELETING: {DELETED},
    DELETED: set(),
}

_PENDING_STATUS = {
    POWER_ON: POWERING_ON,
    POWER_OFF: POWERING_OFF,
}

# 전원 켜기로 갈 수 없는 살아있는 상태 = 실행 중인 상태
RUNNING_STATES = frozenset(
    status for status, targets in _TRANSITIONS.items()
    if status not in _DELETION_STATES and POWERING_ON not in targets
)


def can_transition(src: str, dst: str) -> bool:
    """
    src에서 dst로의 상태 전이가 허용되는지 확인합니다.
    삭제 상태가 아닌 모든 상태에서 DELETING으로 갈 수 있습니다.
    """
    if src not in ALL_STATUSES or dst not in ALL_STATUSES:
        return False
    if dst == DELETING:
        return src not in _DELETION_STATES
    return dst in _TRANSITIONS[src]


def pending_status_for(action: str) -> str:
    try:
        return _PENDING_STATUS[action]
    except KeyError:
        raise InvalidTransitionError(f"Unknown power action '{action}'.") from None


def check_power_action(action: str, status: str):
    """
    전원 작업 가드. 현재 상태에서 작업의 진행 중 상태로 전이할 수 있는지 검사합니다.

    Raises:
        ResourceConflictError: 삭제 중이거나 삭제된 리소스일 때. (409)
        InvalidTransitionError: 알 수 없는 작업이거나, 이미 요청한 전원 상태일 때. (400)
    """
    target = pending_status_for(action)
    if status in _DELETION_STATES:
        raise ResourceConflictError(f"Cannot {action}: resource is {status}.")
    if not can_transition(status, target):
        raise InvalidTransitionError(f"Cannot {action}: VM is {status}.")


def check_power_on(status: str):
    check_power_action(POWER_ON, status)


def check_power_off(status: str):
    check_power_action(POWER_OFF, status)


def check_vapp_delete(vm_statuses: Iterable[str], force: bool = False, vapp_status: Optional[str] = None):
    """
    vApp 삭제 가드.

    Raises:
        ResourceConflictError: vApp이 이미 삭제 중이거나 삭제되었을 때.
        RunningVMsPresentError: force가 아닌데 실행 중인 VM이 하나라도 있을 때.
    """
    if vapp_status is not None and not can_transition(vapp_status, DELETING):
        raise ResourceConflictError(f"Cannot delete vApp: it is {vapp_status}.")
    if force:
        return
    running = [status for status in vm_statuses if status in RUNNING_STATES]
    if running:
        raise RunningVMsPresentError(
            f"vApp has {len(running)} running VM(s); power them off or use force=true."
        )
