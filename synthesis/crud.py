from sqlalchemy import update
from sqlmodel import Session, select

from synthesis.models import QuotaAccount, get_datetime_utc


def get_quota_account(*, session: Session, identity: str) -> QuotaAccount | None:
    statement = select(QuotaAccount).where(QuotaAccount.identity == identity)
    return session.exec(statement).first()


def grant_quota(*, session: Session, identity: str, amount: int) -> QuotaAccount:
    db_obj = get_quota_account(session=session, identity=identity)
    if db_obj is None:
        db_obj = QuotaAccount(identity=identity, balance=0)
    db_obj.balance += amount
    db_obj.updated_at = get_datetime_utc()
    session.add(db_obj)
    session.commit()
    session.refresh(db_obj)
    return db_obj


def consume_quota(*, session: Session, identity: str, amount: int) -> bool:
    """Conditional decrement in a single statement; False when the balance is short."""
    statement = (
        update(QuotaAccount)
        .where(QuotaAccount.identity == identity)
        .where(QuotaAccount.balance >= amount)
        .values(balance=QuotaAccount.balance - amount, updated_at=get_datetime_utc())
    )
    result = session.execute(statement)
    session.commit()
    return result.rowcount == 1
