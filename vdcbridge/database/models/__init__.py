from .organization import Organization
from .user import User
from .role import Role, SYSTEM_ADMIN_ROLE, ORG_ADMIN_ROLE, VAPP_USER_ROLE, BUILTIN_ROLES
from .association import UserRole
from .catalog import Catalog
from .vdc import VDC, AllocationModel
from .vapp import VApp
from .vm import VM

__all__ = [
    "Organization", "User", "Role", "UserRole", "Catalog", "VDC", "AllocationModel", "VApp", "VM",
    "SYSTEM_ADMIN_ROLE", "ORG_ADMIN_ROLE", "VAPP_USER_ROLE", "BUILTIN_ROLES",
]
