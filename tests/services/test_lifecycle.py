# tests/services/test_lifecycle.py
import pytest

from vdcbridge.services import lifecycle
from vdcbridge.services.exceptions import (
    InvalidTransitionError,
    ResourceConflictError,
    RunningVMsPresentError,
)


class TestPowerGuards:
    @pytest.mark.parametrize("status", [lifecycle.POWERED_ON, lifecycle.POWERING_ON])
    def test_power_on_when_running(self, status):
        with pytest.raises(InvalidTransitionError):
            lifecycle.check_power_on(status)

    @pytest.mark.parametrize("status", [lifecycle.POWERED_OFF, lifecycle.POWERING_OFF, lifecycle.STOPPED])
    def test_power_off_when_stopped(self, status):
        with pytest.raises(InvalidTransitionError):
            lifecycle.check_power_off(status)

    @pytest.mark.parametrize("action", [lifecycle.POWER_ON, lifecycle.POWER_OFF])
    @pytest.mark.parametrize("status", [lifecycle.DELETING, lifecycle.DELETED])
    def test_deleting_resources_conflict(self, action, status):
        """삭제 중인 리소스에 대한 전원 작업은 잘못된 전이가 아니라 충돌(409)입니다."""
        with pytest.raises(ResourceConflictError):
            lifecycle.check_power_action(action, status)

    def test_allowed_actions(self):
        lifecycle.check_power_on(lifecycle.POWERED_OFF)
        lifecycle.check_power_on(lifecycle.DEPLOYED)
        lifecycle.check_power_off(lifecycle.POWERED_ON)

    def test_pending_status(self):
        assert lifecycle.pending_status_for(lifecycle.POWER_ON) == lifecycle.POWERING_ON
        assert lifecycle.pending_status_for(lifecycle.POWER_OFF) == lifecycle.POWERING_OFF

    def test_unknown_action(self):
        with pytest.raises(InvalidTransitionError):
            lifecycle.check_power_action("reboot", lifecycle.POWERED_ON)


class TestVAppDeleteGuard:
    def test_running_vm_blocks_delete(self):
        with pytest.raises(RunningVMsPresentError):
            lifecycle.check_vapp_delete([lifecycle.POWERED_OFF, lifecycle.POWERED_ON])

    def test_force_skips_check(self):
        lifecycle.check_vapp_delete([lifecycle.POWERED_ON], force=True)

    def test_no_running_vms(self):
        lifecycle.check_vapp_delete([lifecycle.POWERED_OFF, lifecycle.DEPLOYED])
        lifecycle.check_vapp_delete([])

    @pytest.mark.parametrize("status", [lifecycle.DELETING, lifecycle.DELETED])
    def test_vapp_already_deleting(self, status):
        """이미 삭제 중인 vApp은 force여도 다시 삭제할 수 없습니다."""
        with pytest.raises(ResourceConflictError):
            lifecycle.check_vapp_delete([], force=True, vapp_status=status)


class TestTransitions:
    @pytest.mark.parametrize("src, dst", [
        (lifecycle.INSTANTIATING, lifecycle.DEPLOYED),
        (lifecycle.INSTANTIATING, lifecycle.FAILED),
        (lifecycle.DEPLOYED, lifecycle.POWERING_ON),
        (lifecycle.POWERING_ON, lifecycle.POWERED_ON),
        (lifecycle.POWERED_ON, lifecycle.POWERING_OFF),
        (lifecycle.POWERING_OFF, lifecycle.POWERED_OFF),
        (lifecycle.POWERED_ON, lifecycle.DELETING),
        (lifecycle.DELETING, lifecycle.DELETED),
    ])
    def test_allowed(self, src, dst):
        assert lifecycle.can_transition(src, dst)

    @pytest.mark.parametrize("src, dst", [
        (lifecycle.INSTANTIATING, lifecycle.POWERED_ON),
        (lifecycle.DELETED, lifecycle.DELETING),
        (lifecycle.DELETING, lifecycle.DELETING),
        (lifecycle.FAILED, lifecycle.DEPLOYED),
        (lifecycle.DEPLOYED, "BOGUS"),
    ])
    def test_rejected(self, src, dst):
        assert not lifecycle.can_transition(src, dst)

    @pytest.mark.parametrize("status", sorted(lifecycle.ALL_STATUSES - {lifecycle.DELETING, lifecycle.DELETED}))
    @pytest.mark.parametrize("action", [lifecycle.POWER_ON, lifecycle.POWER_OFF])
    def test_guards_agree_with_graph(self, action, status):
        """전원 가드는 전이 그래프가 허용하는 경우에만 통과합니다."""
        allowed = lifecycle.can_transition(status, lifecycle.pending_status_for(action))

        if allowed:
            lifecycle.check_power_action(action, status)
        else:
            with pytest.raises(InvalidTransitionError):
                lifecycle.check_power_action(action, status)

    def test_failed_vm_can_be_powered_on(self):
        assert lifecycle.can_transition(lifecycle.FAILED, lifecycle.POWERING_ON)
        lifecycle.check_power_on(lifecycle.FAILED)

    def test_running_vm_cannot_be_powered_on_again(self):
        assert not lifecycle.can_transition(lifecycle.POWERED_ON, lifecycle.POWERING_ON)

    def test_running_states(self):
        assert lifecycle.RUNNING_STATES == {lifecycle.POWERED_ON, lifecycle.POWERING_ON}
