from sqlalchemy.orm import DeclarativeBase, sessionmaker
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.pool import StaticPool

class Base(DeclarativeBase): pass

def make_engine(dsn: str) -> Engine:
    if dsn.startswith("sqlite"):
        # single shared connection so in-memory databases survive across sessions
        return create_engine(dsn, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(dsn, pool_pre_ping=True)

def make_session_factory(engine: Engine) -> sessionmaker:
    return sessionmaker(bind=engine, autoflush=False, autocommit=False, expire_on_commit=False)
