from .organization import IOrganizationRepository
from .user import IUserRepository
from .catalog import ICatalogRepository
from .vdc import IVDCRepository
from .vapp import IVAppRepository
from .vm import IVMRepository

__all__ = [
    "IOrganizationRepository", "IUserRepository", "ICatalogRepository",
    "IVDCRepository", "IVAppRepository", "IVMRepository",
]
