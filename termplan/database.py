# termplan/database.py
from sqlmodel import SQLModel, create_engine

from termplan.config import DATABASE_URL

# For sqlite: allow multithread
connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}

engine = create_engine(DATABASE_URL, echo=False, connect_args=connect_args)

def init_db(bind=None) -> None:
    # Import so every table is registered on the metadata
    from termplan import models  # noqa: F401

    SQLModel.metadata.create_all(bind or engine)
