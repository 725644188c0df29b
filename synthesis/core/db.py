from sqlmodel import Session, SQLModel, create_engine

from synthesis import models  # noqa: F401  registers tables on SQLModel.metadata
from synthesis.core.config import settings


def _connect_args(url: str) -> dict:
    if url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(settings.DATABASE_URL, connect_args=_connect_args(settings.DATABASE_URL))


def init_db(session: Session) -> None:
    # Tables are created directly; there is no migration history for the ledger.
    SQLModel.metadata.create_all(session.get_bind())
