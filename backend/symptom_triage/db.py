import uuid
from datetime import datetime, timezone

from sqlalchemy import Column, DateTime, Integer, JSON, String, Text, create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Submission(Base):
    __tablename__ = "submissions"

    seq = Column(Integer, primary_key=True, autoincrement=True)  # insertion order tie-breaker
    id = Column(String, unique=True, nullable=False, index=True, default=lambda: str(uuid.uuid4()))
    owner_id = Column(String, nullable=False, index=True)
    symptoms = Column(Text, nullable=False, index=True)
    age = Column(String, nullable=False, default="")
    gender = Column(String, nullable=False, default="")  # male | female | other | ""
    temperature = Column(String, nullable=False, default="")
    blood_pressure = Column(String, nullable=False, default="")
    image_ref = Column(String, nullable=False, default="")
    assessment = Column(JSON, nullable=False)
    # Assigned by the store, never by the caller
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)


def create_db_engine(database_url: str) -> Engine:
    connect_args = {}
    engine_kwargs = {}
    if database_url.startswith("sqlite"):
        connect_args["check_same_thread"] = False
        if database_url in ("sqlite://", "sqlite:///:memory:"):
            # Share the single in-memory database across threads
            engine_kwargs["poolclass"] = StaticPool

    return create_engine(database_url, connect_args=connect_args, **engine_kwargs)


def init_db(engine: Engine) -> sessionmaker:
    """Create tables if they don't exist and return a session factory."""
    Base.metadata.create_all(bind=engine)
    return sessionmaker(autoflush=False, bind=engine, expire_on_commit=False)
