import asyncio
import logging
from abc import ABC, abstractmethod
from contextlib import asynccontextmanager

from sqlalchemy.engine import Engine
from sqlmodel import Session

from synthesis.crud import consume_quota, get_quota_account, grant_quota

logger = logging.getLogger(__name__)


class QuotaLedger(ABC):
    """Point balance per identity. `try_consume` is an atomic check-and-decrement."""

    @abstractmethod
    async def get_balance(self, identity: str) -> int:
        pass

    @abstractmethod
    async def try_consume(self, identity: str, amount: int) -> bool:
        pass

    @abstractmethod
    async def grant(self, identity: str, amount: int) -> int:
        """Add points and return the new balance."""
        pass


class _PerIdentityLocks:
    """One asyncio.Lock per identity, dropped once nobody holds or awaits it."""

    def __init__(self) -> None:
        self._locks: dict[str, asyncio.Lock] = {}
        self._users: dict[str, int] = {}

    @asynccontextmanager
    async def hold(self, identity: str):
        lock = self._locks.setdefault(identity, asyncio.Lock())
        self._users[identity] = self._users.get(identity, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[identity] -= 1
            if not self._users[identity]:
                del self._users[identity]
                del self._locks[identity]

    def __len__(self) -> int:
        return len(self._locks)


class InMemoryQuotaLedger(QuotaLedger):
    def __init__(self, balances: dict[str, int] | None = None):
        self._balances: dict[str, int] = dict(balances or {})
        self._locks = _PerIdentityLocks()

    async def get_balance(self, identity: str) -> int:
        return self._balances.get(identity, 0)

    async def grant(self, identity: str, amount: int) -> int:
        async with self._locks.hold(identity):
            self._balances[identity] = self._balances.get(identity, 0) + amount
            return self._balances[identity]

    async def try_consume(self, identity: str, amount: int) -> bool:
        async with self._locks.hold(identity):
            balance = self._balances.get(identity, 0)
            if balance < amount:
                logger.info("Quota refused for %s: balance %s < %s.", identity, balance, amount)
                return False
            self._balances[identity] = balance - amount
            logger.info("Consumed %s quota for %s (remaining %s).", amount, identity, balance - amount)
            return True


class SqlQuotaLedger(QuotaLedger):
    """Ledger backed by the QuotaAccount table; the decrement is a conditional UPDATE."""

    def __init__(self, engine: Engine):
        self.engine = engine
        self._locks = _PerIdentityLocks()

    def _balance(self, identity: str) -> int:
        with Session(self.engine) as session:
            account = get_quota_account(session=session, identity=identity)
            return account.balance if account else 0

    def _consume(self, identity: str, amount: int) -> bool:
        with Session(self.engine) as session:
            return consume_quota(session=session, identity=identity, amount=amount)

    def _grant(self, identity: str, amount: int) -> int:
        with Session(self.engine) as session:
            return grant_quota(session=session, identity=identity, amount=amount).balance

    async def get_balance(self, identity: str) -> int:
        return await asyncio.to_thread(self._balance, identity)

    async def grant(self, identity: str, amount: int) -> int:
        async with self._locks.hold(identity):
            return await asyncio.to_thread(self._grant, identity, amount)

    async def try_consume(self, identity: str, amount: int) -> bool:
        async with self._locks.hold(identity):
            consumed = await asyncio.to_thread(self._consume, identity, amount)
        if consumed:
            logger.info("Consumed %s quota for %s.", amount, identity)
        else:
            logger.info("Quota refused for %s: insufficient balance for %s.", identity, amount)
        return consumed
