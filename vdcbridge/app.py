# vdcbridge/app.py
from wsgiref.simple_server import make_server
from urllib.parse import parse_qs
import json
import logging
import re
import sys
from typing import Optional

# SQLAlchemy 및 의존성 임포트
from vdcbridge.config import AppConfig, get_settings
from vdcbridge.cluster import ClusterClient, build_cluster_client
from vdcbridge.database.database import SessionLocal
from vdcbridge.repositories.sqlalchemy import (
    SqlalchemyCatalogRepository,
    SqlalchemyOrganizationRepository,
    SqlalchemyUserRepository,
    SqlalchemyVAppRepository,
    SqlalchemyVDCRepository,
    SqlalchemyVMRepository,
)
from vdcbridge.services.access_service import AccessService
from vdcbridge.services.compute_service import ComputeService, vapp_to_dict
from vdcbridge.services.exceptions import AccessDeniedError, ValidationError, status_of, to_error_body
from vdcbridge.services.namespace_service import NamespaceService
from vdcbridge.services.template_service import TemplateService
from vdcbridge.services.tenancy_service import UPDATABLE_FIELDS, TenancyService, vdc_to_dict
from vdcbridge.utils import urn

LOGGER = logging.getLogger(__name__)

_STATUS_TEXT = {
    200: "200 OK",
    201: "201 Created",
    202: "202 Accepted",
    204: "204 No Content",
    400: "400 Bad Request",
    403: "403 Forbidden",
    404: "404 Not Found",
    409: "409 Conflict",
    500: "500 Internal Server Error",
    503: "503 Service Unavailable",
}

# --------------------------------------------------------------------------
## 요청 처리 유틸리티 함수
# --------------------------------------------------------------------------

def get_request_data(environ):
    try:
        content_length = int(environ.get("CONTENT_LENGTH") or 0)
        data = json.loads(environ["wsgi.input"].read(content_length)) if content_length > 0 else {}
    except (ValueError, json.JSONDecodeError):
        raise ValidationError("Invalid or missing JSON body.")
    if not isinstance(data, dict):
        raise ValidationError("JSON body must be an object.")
    return data


def get_query(environ):
    return {key: values[-1] for key, values in parse_qs(environ.get("QUERY_STRING", "")).items()}


def get_int_param(query, name, default):
    try:
        return int(query.get(name, default))
    except ValueError:
        raise ValidationError(f"'{name}' must be an integer.")


def get_string_field(data, name, required=True):
    value = data.get(name)
    if value is None and not required:
        return None
    if not isinstance(value, str) or (required and not value):
        raise ValidationError(f"'{name}' must be a non-empty string.")
    return value


def get_vdc_attrs(data):
    """VDC 요청 본문에서 허용된 속성만 받아들입니다."""
    unknown = set(data) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValidationError(f"Unknown VDC attribute(s): {', '.join(sorted(unknown))}.")
    return dict(data)


def get_caller_id(environ):
    """인증 프록시가 넣어준 X-User-Id 헤더(사용자 URN)에서 호출자 ID를 꺼냅니다."""
    handle = environ.get("HTTP_X_USER_ID")
    if not handle:
        raise AccessDeniedError("Missing 'X-User-Id' header.")
    return urn.decode_as(handle, urn.USER)


def handle_exception(e):
    status = status_of(e)
    if status >= 500:
        LOGGER.error("Request failed", exc_info=e, extra={"error": type(e).__name__})
    return _STATUS_TEXT.get(status, "500 Internal Server Error"), json.dumps(to_error_body(e))

# --------------------------------------------------------------------------
## WSGI 애플리케이션 (의존성 주입 및 라우팅)
# --------------------------------------------------------------------------

class VdcBridgeApp:
    """
    WSGI 애플리케이션.

    ClusterClient는 생성자로 전달받고 start()/stop()으로 수명을 명시적으로 관리합니다.
    요청마다 DB 세션과 저장소, 서비스를 새로 만들어 environ['services']로 핸들러에 넘깁니다.
    cluster가 None이면 오프라인 모드로 동작합니다.
    """

    def __init__(self, settings: AppConfig, cluster: Optional[ClusterClient] = None, session_factory=None):
        self.settings = settings
        self.cluster = cluster
        self.session_factory = session_factory or SessionLocal

    def start(self):
        if self.cluster is not None:
            self.cluster.start()

    def stop(self):
        if self.cluster is not None:
            self.cluster.stop()

    def build_services(self, db_session):
        # 1. 의존성 생성 (Repositories -> Services)
        kubernetes = self.settings.kubernetes
        user_repo = SqlalchemyUserRepository(db_session)
        org_repo = SqlalchemyOrganizationRepository(db_session)
        catalog_repo = SqlalchemyCatalogRepository(db_session)
        vdc_repo = SqlalchemyVDCRepository(db_session)
        vapp_repo = SqlalchemyVAppRepository(db_session)
        vm_repo = SqlalchemyVMRepository(db_session)

        access_service = AccessService(user_repo, org_repo, vdc_repo, vapp_repo, vm_repo, catalog_repo)
        namespace_service = NamespaceService(
            self.cluster, vdc_repo, org_repo,
            network_isolation=kubernetes.network_isolation,
            dns_namespace_label=kubernetes.dns_namespace_label,
        )
        return {
            'tenancy': TenancyService(access_service, org_repo, vdc_repo, vapp_repo, catalog_repo, namespace_service),
            'namespaces': namespace_service,
            'template': TemplateService(access_service, vapp_repo, self.cluster),
            'compute': ComputeService(access_service, vdc_repo, vapp_repo, vm_repo, self.cluster),
            'access': access_service,
        }

    def __call__(self, environ, start_response):
        db_session = self.session_factory()
        try:
            # 2. 생성된 서비스 객체들을 environ을 통해 핸들러에 전달
            environ['services'] = self.build_services(db_session)

            # 3. 라우팅 및 핸들러 실행
            path = environ.get("PATH_INFO", "")
            method = environ.get("REQUEST_METHOD", "")

            handler, path_args = None, []
            for route_method, pattern, route_handler in routes:
                if method == route_method and (match := re.match(pattern, path)):
                    handler, path_args = route_handler, match.groups()
                    break

            if handler:
                status, response_body = handler(environ, *path_args)
            else:
                status, response_body = '404 Not Found', json.dumps({'error': 'NotFound', 'message': 'Not Found'})

        except Exception as e:
            status, response_body = handle_exception(e)
        finally:
            db_session.close()

        start_response(status, [("Content-Type", "application/json")])
        return [response_body.encode("utf-8")]


def create_app(settings: Optional[AppConfig] = None, session_factory=None) -> VdcBridgeApp:
    """
    설정에 따라 ClusterClient를 만들고 캐시를 시작한 애플리케이션을 반환합니다.
    종료할 때는 반환된 객체의 stop()을 호출해야 합니다.
    """
    settings = settings or get_settings()
    app = VdcBridgeApp(settings, build_cluster_client(settings.kubernetes), session_factory)
    app.start()
    return app

# --------------------------------------------------------------------------
## 핸들러 함수
# --------------------------------------------------------------------------

def instantiate_template_handler(environ, vdc_handle):
    caller_id = get_caller_id(environ)
    data = get_request_data(environ)
    source = data.get('source')
    if source is not None and not isinstance(source, dict):
        raise ValidationError("'source' must be an object.")
    if source:
        catalog_item = get_string_field(source, 'href')
    else:
        catalog_item = get_string_field(data, 'catalogItem')
    vapp = environ['services']['template'].instantiate_template(
        caller_id, vdc_handle, get_string_field(data, 'name'), catalog_item,
        description=get_string_field(data, 'description', required=False) or '',
    )
    return '201 Created', json.dumps(vapp_to_dict(vapp))


def list_vapps_handler(environ, vdc_handle):
    caller_id = get_caller_id(environ)
    vapps = environ['services']['compute'].list_vapps(caller_id, vdc_handle)
    return '200 OK', json.dumps({"values": vapps, "resultTotal": len(vapps)})


def get_vapp_handler(environ, vapp_handle):
    caller_id = get_caller_id(environ)
    return '200 OK', json.dumps(environ['services']['compute'].get_vapp(caller_id, vapp_handle))


def delete_vapp_handler(environ, vapp_handle):
    caller_id = get_caller_id(environ)
    force = get_query(environ).get('force', 'false').lower() == 'true'
    result = environ['services']['compute'].delete_vapp(caller_id, vapp_handle, force=force)
    return '200 OK', json.dumps(result)


def get_vm_handler(environ, vm_handle):
    caller_id = get_caller_id(environ)
    return '200 OK', json.dumps(environ['services']['compute'].get_vm(caller_id, vm_handle))


def power_on_handler(environ, vm_handle):
    caller_id = get_caller_id(environ)
    return '202 Accepted', json.dumps(environ['services']['compute'].power_on(caller_id, vm_handle))


def power_off_handler(environ, vm_handle):
    caller_id = get_caller_id(environ)
    return '202 Accepted', json.dumps(environ['services']['compute'].power_off(caller_id, vm_handle))


def list_catalog_items_handler(environ, catalog_handle):
    caller_id = get_caller_id(environ)
    query = get_query(environ)
    page = environ['services']['template'].list_catalog_items(
        caller_id, catalog_handle,
        limit=get_int_param(query, 'limit', 25),
        offset=get_int_param(query, 'offset', 0),
    )
    return '200 OK', json.dumps(page)


def get_catalog_item_handler(environ, item_handle):
    caller_id = get_caller_id(environ)
    return '200 OK', json.dumps(environ['services']['template'].get_catalog_item(caller_id, item_handle))


def create_vdc_handler(environ, org_handle):
    caller_id = get_caller_id(environ)
    attrs = get_vdc_attrs(get_request_data(environ))
    vdc = environ['services']['tenancy'].create_vdc(caller_id, org_handle, attrs.pop('name', None), **attrs)
    return '201 Created', json.dumps(vdc_to_dict(vdc))


def update_vdc_handler(environ, org_handle, vdc_handle):
    caller_id = get_caller_id(environ)
    attrs = get_vdc_attrs(get_request_data(environ))
    vdc = environ['services']['tenancy'].update_vdc(caller_id, vdc_handle, org_handle, **attrs)
    return '200 OK', json.dumps(vdc_to_dict(vdc))


def delete_vdc_handler(environ, org_handle, vdc_handle):
    caller_id = get_caller_id(environ)
    environ['services']['tenancy'].delete_vdc(caller_id, vdc_handle, org_handle)
    return '204 No Content', ''


def delete_org_handler(environ, org_handle):
    caller_id = get_caller_id(environ)
    environ['services']['tenancy'].delete_organization(caller_id, org_handle)
    return '204 No Content', ''


def reconcile_namespaces_handler(environ, *args):
    caller_id = get_caller_id(environ)
    environ['services']['access'].require_system_admin(caller_id)
    summary = environ['services']['namespaces'].reconcile_all()
    return '200 OK', json.dumps(summary)


_HANDLE = r'(urn:vcloud:[^/]+|[0-9a-fA-F-]{32,36})'

routes = [
    ('POST', rf'^/cloudapi/1\.0\.0/vdcs/{_HANDLE}/actions/instantiateTemplate$', instantiate_template_handler),
    ('GET', rf'^/cloudapi/1\.0\.0/vdcs/{_HANDLE}/vapps$', list_vapps_handler),
    ('GET', rf'^/cloudapi/1\.0\.0/vapps/{_HANDLE}$', get_vapp_handler),
    ('DELETE', rf'^/cloudapi/1\.0\.0/vapps/{_HANDLE}$', delete_vapp_handler),
    ('GET', rf'^/cloudapi/1\.0\.0/vms/{_HANDLE}$', get_vm_handler),
    ('POST', rf'^/cloudapi/1\.0\.0/vms/{_HANDLE}/actions/powerOn$', power_on_handler),
    ('POST', rf'^/cloudapi/1\.0\.0/vms/{_HANDLE}/actions/powerOff$', power_off_handler),
    ('GET', rf'^/cloudapi/1\.0\.0/catalogs/{_HANDLE}/catalogItems$', list_catalog_items_handler),
    ('GET', rf'^/cloudapi/1\.0\.0/catalogItems/{_HANDLE}$', get_catalog_item_handler),
    ('POST', rf'^/api/admin/org/{_HANDLE}/vdcs$', create_vdc_handler),
    ('PUT', rf'^/api/admin/org/{_HANDLE}/vdcs/{_HANDLE}$', update_vdc_handler),
    ('DELETE', rf'^/api/admin/org/{_HANDLE}/vdcs/{_HANDLE}$', delete_vdc_handler),
    ('DELETE', rf'^/api/admin/org/{_HANDLE}$', delete_org_handler),
    ('POST', r'^/api/admin/actions/reconcileNamespaces$', reconcile_namespaces_handler),
]

# --------------------------------------------------------------------------
## 서버 실행
# --------------------------------------------------------------------------

if __name__ == "__main__":
    from vdcbridge.database.db_init import initialize_db

    settings = get_settings()
    logging.basicConfig(
        level=settings.logging.level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    app = None
    try:
        initialize_db()
        app = create_app(settings)
        with make_server("", settings.listen_port, app) as httpd:
            LOGGER.info("Serving %s on port %d", settings.service_name, settings.listen_port)
            httpd.serve_forever()
    except Exception as e:
        print(f"Error starting server: {e}", file=sys.stderr)
    finally:
        if app is not None:
            app.stop()
