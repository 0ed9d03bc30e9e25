import logging

from .database import engine, SessionLocal, Base
from .models import *

LOGGER = logging.getLogger(__name__)

PROVIDER_ORG_NAME = "Provider"


def initialize_db(bind=None, session_factory=None):
    """
    DB와 테이블을 생성하고, 기본 데이터(내장 역할, 프로바이더 조직)를 삽입합니다.
    이미 존재하는 데이터는 다시 만들지 않으므로 여러 번 호출해도 안전합니다.
    """
    bind = bind or engine
    session_factory = session_factory or SessionLocal

    # 모든 테이블을 생성합니다. (이미 존재하면 생성하지 않음)
    Base.metadata.create_all(bind=bind)
    LOGGER.info("Database tables created")

    db = session_factory()
    try:
        existing_roles = {role.name for role in db.query(Role).all()}
        for role_name in BUILTIN_ROLES:
            if role_name not in existing_roles:
                db.add(Role(name=role_name))

        # 프로바이더 조직은 시스템 전체에 정확히 하나만 존재합니다.
        if not db.query(Organization).filter(Organization.is_provider.is_(True)).first():
            db.add(Organization(
                name=PROVIDER_ORG_NAME,
                display_name="Provider Organization",
                description="System provider organization",
                is_provider=True,
            ))

        db.commit()
        LOGGER.info("Seed data ensured", extra={"roles": list(BUILTIN_ROLES)})

    except Exception:
        LOGGER.exception("Database initialization failed")
        db.rollback()
        raise
    finally:
        db.close()


if __name__ == '__main__':
    logging.basicConfig(level=logging.INFO)
    initialize_db()
