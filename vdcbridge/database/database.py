from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker, declarative_base
from sqlalchemy.pool import StaticPool

from vdcbridge.config import get_settings


def make_engine(url: str, echo: bool = False):
    """
    주어진 URL로 SQLAlchemy 엔진을 생성합니다.

    SQLite는 요청마다 다른 스레드에서 세션이 열리므로 check_same_thread를 끄고,
    인메모리 DB는 모든 연결이 같은 DB를 보도록 StaticPool을 사용합니다.
    """
    if url.startswith("sqlite"):
        kwargs = {"connect_args": {"check_same_thread": False}}
        if url in ("sqlite://", "sqlite:///:memory:"):
            kwargs["poolclass"] = StaticPool
        return create_engine(url, echo=echo, **kwargs)
    return create_engine(url, echo=echo, pool_pre_ping=True)


_settings = get_settings()

# SQLAlchemy 엔진 생성 (연결 문자열은 VDCBRIDGE_DATABASE__URL 환경 변수로 변경 가능)
engine = make_engine(_settings.database.url, echo=_settings.database.echo)

# autocommit=False, autoflush=False로 설정하여, 명시적으로 commit을 호출해야 DB에 반영됩니다.
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# 모든 모델 클래스가 상속받을 Base 클래스
Base = declarative_base()
