import logging
from typing import Any, Dict, List, Optional

from vdcbridge.cluster import ClusterClient
from vdcbridge.database import models
from vdcbridge.repositories.interfaces import IVAppRepository, IVDCRepository, IVMRepository
from vdcbridge.services import lifecycle
from vdcbridge.services.access_service import AccessService
from vdcbridge.services.exceptions import (
    ClusterNotFoundError,
    ClusterUnavailableError,
    ResourceNotFoundInClusterError,
)
from vdcbridge.utils import manifests, urn

LOGGER = logging.getLogger(__name__)

_RUN_STRATEGIES = {
    lifecycle.POWER_ON: manifests.RUN_STRATEGY_ALWAYS,
    lifecycle.POWER_OFF: manifests.RUN_STRATEGY_HALTED,
}


def vapp_to_dict(vapp: models.VApp) -> Dict[str, Any]:
    return {
        "id": urn.encode(urn.VAPP, vapp.id),
        "name": vapp.name,
        "description": vapp.description,
        "status": vapp.status,
        "vdc": urn.encode(urn.VDC, vapp.vdc_id),
        "sourceCatalogItem": vapp.source_catalog_item,
        "templateInstance": vapp.cluster_instance_ref,
        "createdAt": vapp.created_at.isoformat() if vapp.created_at else None,
    }


def vm_to_dict(vm: models.VM) -> Dict[str, Any]:
    return {
        "id": urn.encode(urn.VM, vm.id),
        "name": vm.name,
        "status": vm.status,
        "vapp": urn.encode(urn.VAPP, vm.vapp_id),
        "vmName": vm.vm_name,
        "namespace": vm.namespace,
        "cpuCount": vm.cpu_count,
        "memoryMB": vm.memory_mb,
    }


class ComputeService:
    def __init__(self, access: AccessService, vdc_repo: IVDCRepository, vapp_repo: IVAppRepository,
                 vm_repo: IVMRepository, cluster: Optional[ClusterClient] = None):
        self.access = access
        self.vdc_repo = vdc_repo
        self.vapp_repo = vapp_repo
        self.vm_repo = vm_repo
        self.cluster = cluster

    # ------------------------------------------------------------------
    # power
    # ------------------------------------------------------------------
    def power_on(self, caller_id: str, vm_handle: str) -> Dict[str, Any]:
        """VM의 runStrategy를 Always로 바꾸고 논리 상태를 POWERING_ON으로 기록합니다."""
        return self._power(caller_id, vm_handle, lifecycle.POWER_ON)

    def power_off(self, caller_id: str, vm_handle: str) -> Dict[str, Any]:
        """VM의 runStrategy를 Halted로 바꾸고 논리 상태를 POWERING_OFF로 기록합니다."""
        return self._power(caller_id, vm_handle, lifecycle.POWER_OFF)

    def _power(self, caller_id: str, vm_handle: str, action: str) -> Dict[str, Any]:
        """
        전원 작업의 공통 흐름.

        1. VM 식별자 정규화 (URN / 32자리 hex / UUID)
        2. 클러스터 백엔드 확인
        3. 접근 권한 확인
        4. 상태 가드 검사 (클러스터 호출 전)
        5. VirtualMachine 존재 확인 후 runStrategy merge patch
        6. 논리 상태를 진행 중 상태로 기록 (최종 상태는 상태 감시 프로세스가 기록)

        Raises:
            MalformedHandleError: VM 식별자 형식이 잘못되었을 때.
            ClusterUnavailableError: 클러스터 백엔드가 없을 때.
            NotFoundError: VM이 없거나 다른 조직의 VM일 때.
            InvalidTransitionError: 이미 요청한 전원 상태일 때.
            ResourceConflictError: VM이 삭제 중이거나 삭제되었을 때.
            ResourceNotFoundInClusterError: 클러스터에 VirtualMachine 리소스가 없을 때.
        """
        vm_id = urn.normalize_vm_id(vm_handle)
        if self.cluster is None:
            raise ClusterUnavailableError("Cluster backend is not configured.")

        vm = self.access.resolve_vm(caller_id, vm_id)
        lifecycle.check_power_action(action, vm.status)

        try:
            self.cluster.get_virtual_machine(vm.namespace, vm.vm_name)
            self.cluster.patch_virtual_machine(
                vm.namespace, vm.vm_name, manifests.build_run_strategy_patch(_RUN_STRATEGIES[action])
            )
        except ClusterNotFoundError as e:
            raise ResourceNotFoundInClusterError(
                f"VirtualMachine '{vm.vm_name}' not found in the cluster.", detail=vm.namespace
            ) from e

        vm = self.vm_repo.update_status(vm, lifecycle.pending_status_for(action))
        LOGGER.info("VM power action issued", extra={"vm_id": vm.id, "action": action, "status": vm.status})
        return {
            "id": urn.encode(urn.VM, vm.id),
            "name": vm.name,
            "status": vm.status,
        }

    # ------------------------------------------------------------------
    # vApps
    # ------------------------------------------------------------------
    def delete_vapp(self, caller_id: str, vapp_handle: str, force: bool = False) -> Dict[str, Any]:
        """
        vApp과 그에 속한 VM 기록을 삭제합니다.

        force가 아니면 실행 중인 VM이 있을 때 삭제를 거부합니다. 클러스터에 TemplateInstance가
        있으면 먼저 삭제하며, 이미 없는 경우(404)는 무시합니다. 실행 중인 VM 검사는 클러스터
        호출 전에 한 번, DB 삭제 트랜잭션 안에서 다시 한 번 수행합니다.

        Raises:
            ResourceConflictError: vApp이 이미 삭제 중일 때.
            RunningVMsPresentError: force 없이 실행 중인 VM이 있을 때.
        """
        vapp = self.access.resolve_as(caller_id, vapp_handle, urn.VAPP)
        vms = self.vm_repo.list_by_vapp(vapp.id)
        lifecycle.check_vapp_delete([vm.status for vm in vms], force, vapp_status=vapp.status)

        if self.cluster is not None and vapp.cluster_instance_ref:
            vdc = self.vdc_repo.find_by_id(vapp.vdc_id)
            self.cluster.delete_template_instance(vdc.namespace, vapp.cluster_instance_ref)

        deleted_vms = self.vapp_repo.delete_with_vms(vapp, force=force)
        LOGGER.info("vApp deleted", extra={"vapp_id": vapp.id, "deleted_vms": deleted_vms, "force": force})
        return {"id": urn.encode(urn.VAPP, vapp.id), "deletedVms": deleted_vms}

    def list_vapps(self, caller_id: str, vdc_handle: str) -> List[Dict[str, Any]]:
        vdc = self.access.resolve_as(caller_id, vdc_handle, urn.VDC)
        return [vapp_to_dict(vapp) for vapp in self.vapp_repo.list_by_vdc(vdc.id)]

    def get_vapp(self, caller_id: str, vapp_handle: str) -> Dict[str, Any]:
        vapp = self.access.resolve_as(caller_id, vapp_handle, urn.VAPP)
        data = vapp_to_dict(vapp)
        data["vms"] = [vm_to_dict(vm) for vm in self.vm_repo.list_by_vapp(vapp.id)]
        return data

    def get_vm(self, caller_id: str, vm_handle: str) -> Dict[str, Any]:
        return vm_to_dict(self.access.resolve_vm(caller_id, vm_handle))
