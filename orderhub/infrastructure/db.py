from functools import lru_cache
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker, Session
from orderhub.core_settings import get_settings
from orderhub.domain.models import Base

@lru_cache
def get_engine() -> Engine:
    settings = get_settings()
    return create_engine(settings.database_url, echo=False, pool_pre_ping=True)

@lru_cache
def get_session_factory() -> sessionmaker:
    return sessionmaker(bind=get_engine(), autoflush=False, autocommit=False, expire_on_commit=False)

def get_db() -> Session:
    db = get_session_factory()()
    try:
        yield db
    finally:
        db.close()

def init_models(engine: Engine = None):
    Base.metadata.create_all(engine or get_engine())
