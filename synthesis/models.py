from datetime import datetime, timezone

from sqlalchemy import DateTime
from sqlmodel import Field, SQLModel


def get_datetime_utc() -> datetime:
    return datetime.now(timezone.utc)


# Shared properties
class QuotaAccountBase(SQLModel):
    identity: str = Field(primary_key=True, max_length=255)
    balance: int = Field(default=0, ge=0)


# Database model, database table inferred from class name
class QuotaAccount(QuotaAccountBase, table=True):
    updated_at: datetime | None = Field(
        default_factory=get_datetime_utc,
        sa_type=DateTime(timezone=True),  # type: ignore
    )


# Properties to return via API
class QuotaAccountPublic(QuotaAccountBase):
    pass


class QuotaGrant(SQLModel):
    amount: int = Field(gt=0)
