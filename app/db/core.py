from app.core.config import settings
from sqlmodel import Session, SQLModel, create_engine


connect_args = {}
if settings.database_url.startswith("sqlite"):
    connect_args = {"check_same_thread": False}

engine = create_engine(settings.database_url, connect_args=connect_args)


def init_db(bind=engine):
    # Import ensures every table is registered on the metadata
    from app.db import schema  # noqa: F401

    SQLModel.metadata.create_all(bind)


def get_session():
    with Session(engine) as session:
        yield session
