from .sqlalchemy_organization_repository import SqlalchemyOrganizationRepository
from .sqlalchemy_user_repository import SqlalchemyUserRepository
from .sqlalchemy_catalog_repository import SqlalchemyCatalogRepository
from .sqlalchemy_vdc_repository import SqlalchemyVDCRepository
from .sqlalchemy_vapp_repository import SqlalchemyVAppRepository
from .sqlalchemy_vm_repository import SqlalchemyVMRepository
