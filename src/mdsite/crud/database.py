"""Engine construction and schema initialisation for the build manifest"""

from sqlalchemy.engine import Engine
from sqlmodel import SQLModel, create_engine

from mdsite.crud import models  # noqa: F401  (registers tables on SQLModel.metadata)


def make_engine(db_url: str) -> Engine:
    return create_engine(db_url, echo=False)


def init_db(engine: Engine) -> None:
    SQLModel.metadata.create_all(engine)


def reset_db(engine: Engine) -> None:
    SQLModel.metadata.drop_all(engine)
    SQLModel.metadata.create_all(engine)
