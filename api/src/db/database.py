from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from api.src.config import get_settings
from orchestrator.src.models.db import Base

settings = get_settings()

connect_args = {}
if settings.database_url.startswith("sqlite"):
    # FastAPI runs sync routes in a threadpool
    connect_args["check_same_thread"] = False

engine = create_engine(settings.database_url, connect_args=connect_args)

SessionLocal = sessionmaker(bind=engine, expire_on_commit=False)

def get_db():
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()

def init_db():
    Base.metadata.create_all(engine)
