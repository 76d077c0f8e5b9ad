from functools import lru_cache

from sqlalchemy import Engine, create_engine
from sqlalchemy.orm import Session, sessionmaker

from app.core.config import get_settings
from app.models.base import Base


def build_engine(database_url: str) -> Engine:
    """URL로 엔진을 생성한다. SQLite는 워커 스레드에서 접근하므로 스레드 검사를 끈다."""
    connect_args = {"check_same_thread": False} if database_url.startswith("sqlite") else {}
    return create_engine(database_url, connect_args=connect_args, pool_pre_ping=True)


@lru_cache
def get_engine() -> Engine:
    """`SQLAlchemy` 엔진을 반환한다. 최초 호출 시에만 생성되고 이후 캐싱된다."""
    return build_engine(get_settings().DATABASE_URL)


def get_session_local(engine: Engine | None = None) -> sessionmaker[Session]:
    """`SessionLocal` 팩토리를 반환한다."""
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine or get_engine())


def init_db(engine: Engine | None = None) -> None:
    """모델 메타데이터 기준으로 누락된 테이블을 생성한다."""
    import app.models.place_cache  # noqa: F401
    import app.models.trip  # noqa: F401

    Base.metadata.create_all(bind=engine or get_engine())
