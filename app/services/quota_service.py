"""
Quota Ledger - token balance checks and mutations.

Serializes mutations per user inside the process (one asyncio.Lock per user
id); the storage layer's compare-and-set update covers other processes.

Debit policies:
- ``debit``         strict: fails with InsufficientTokens and changes nothing
                    when the amount exceeds the balance
- ``charge_usage``  post-hoc provider cost: charges min(amount, balance), so a
                    cost larger than the balance leaves it at exactly zero
"""

import asyncio
import logging
import weakref
from typing import Optional

from app.db.models import User, TransactionKind
from app.services.errors import InsufficientQuota, UserNotFound
from app.services.storage import Storage, DebitResult, CreditResult

logger = logging.getLogger(__name__)


def _check_amount(amount: int) -> None:
    if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
        raise ValueError(f"Token amount must be a non-negative integer, got {amount!r}")


class QuotaLedger:
    def __init__(self, storage: Storage):
        self.storage = storage
        # Entries disappear once no coroutine holds or waits on the lock
        self._locks: "weakref.WeakValueDictionary[int, asyncio.Lock]" = weakref.WeakValueDictionary()

    def lock_for(self, user_id: int) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    async def require_positive(self, user_id: int) -> User:
        """Pre-flight check before an expensive call: at least one token left."""
        user = await self.storage.get_user(user_id)
        if not user:
            raise UserNotFound(user_id)
        if user.token_balance <= 0:
            raise InsufficientQuota(user.token_balance)
        return user

    async def debit(self, user_id: int, amount: int, reason: Optional[str] = None) -> DebitResult:
        _check_amount(amount)
        async with self.lock_for(user_id):
            result = await self.storage.debit_tokens(user_id, amount, clamp=False, reason=reason)
        logger.info("Debited %d tokens from user %s (balance %d)", amount, user_id, result.balance)
        return result

    async def charge_usage(
        self,
        user_id: int,
        amount: int,
        reason: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> DebitResult:
        _check_amount(amount)
        async with self.lock_for(user_id):
            result = await self.storage.debit_tokens(
                user_id, amount, clamp=True, reason=reason, reference=reference
            )
        if result.charged < result.requested:
            logger.warning(
                "Usage cost %d exceeded balance of user %s; charged %d, balance now 0",
                result.requested, user_id, result.charged,
            )
        else:
            logger.info("Charged %d tokens to user %s (balance %d)", result.charged, user_id, result.balance)
        return result

    async def credit(
        self,
        user_id: int,
        amount: int,
        reason: Optional[str] = None,
        reference: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> CreditResult:
        _check_amount(amount)
        async with self.lock_for(user_id):
            result = await self.storage.credit_tokens(
                user_id,
                amount,
                kind=TransactionKind.PURCHASE,
                reason=reason,
                reference=reference,
                idempotency_key=idempotency_key,
            )
        if result.applied:
            logger.info("Credited %d tokens to user %s (balance %d)", amount, user_id, result.balance)
        else:
            logger.info("Skipped duplicate credit %s for user %s", idempotency_key, user_id)
        return result
