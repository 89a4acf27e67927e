"""
Storage - repository over users, surveys and the token ledger.

The request handlers and the workflow only talk to the ``Storage`` interface;
``SQLStorage`` is the async SQLAlchemy implementation. Every balance mutation
is a compare-and-set ``UPDATE`` on the balance that was read, so concurrent
writers (other workers, other processes) can never push it below zero.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import List, Optional

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.db.models import User, Survey, TokenTransaction, TransactionKind
from app.services.errors import UserNotFound, InsufficientTokens, ValidationFailed

logger = logging.getLogger(__name__)

# Compare-and-set attempts before giving up on a hot row
MAX_CAS_ATTEMPTS = 10


@dataclass
class DebitResult:
    charged: int
    requested: int
    balance: int


@dataclass
class CreditResult:
    applied: bool
    balance: int


class Storage(ABC):
    """Operations the application needs from persistence."""

    @abstractmethod
    async def get_user(self, user_id: int) -> Optional[User]: ...

    @abstractmethod
    async def get_user_by_username(self, username: str) -> Optional[User]: ...

    @abstractmethod
    async def create_user(
        self,
        username: str,
        hashed_password: Optional[str],
        starting_balance: int,
        email: Optional[str] = None,
        google_id: Optional[str] = None,
    ) -> User: ...

    @abstractmethod
    async def update_qualtrics_credentials(
        self, user_id: int, api_token: str, datacenter: str, brand_id: str
    ) -> User: ...

    @abstractmethod
    async def debit_tokens(
        self,
        user_id: int,
        amount: int,
        *,
        clamp: bool = False,
        reason: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> DebitResult: ...

    @abstractmethod
    async def credit_tokens(
        self,
        user_id: int,
        amount: int,
        *,
        kind: TransactionKind = TransactionKind.PURCHASE,
        reason: Optional[str] = None,
        reference: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> CreditResult: ...

    @abstractmethod
    async def create_survey(self, user_id: int, qualtrics_id: str, name: str) -> Survey: ...

    @abstractmethod
    async def get_user_surveys(self, user_id: int) -> List[Survey]: ...

    @abstractmethod
    async def get_token_history(self, user_id: int, limit: int = 50) -> List[TokenTransaction]: ...


class SQLStorage(Storage):
    """Storage backed by an async SQLAlchemy session factory."""

    def __init__(self, session_maker: async_sessionmaker):
        self._session_maker = session_maker

    async def get_user(self, user_id: int) -> Optional[User]:
        async with self._session_maker() as db:
            return await self._get_user(db, user_id)

    async def get_user_by_username(self, username: str) -> Optional[User]:
        async with self._session_maker() as db:
            result = await db.execute(select(User).where(User.username == username))
            return result.scalar_one_or_none()

    async def create_user(
        self,
        username: str,
        hashed_password: Optional[str],
        starting_balance: int,
        email: Optional[str] = None,
        google_id: Optional[str] = None,
    ) -> User:
        async with self._session_maker() as db:
            user = User(
                username=username,
                hashed_password=hashed_password,
                email=email,
                google_id=google_id,
                token_balance=starting_balance,
            )
            db.add(user)
            try:
                await db.flush()  # Get user.id before writing the ledger entry
                db.add(TokenTransaction(
                    user_id=user.id,
                    kind=TransactionKind.SIGNUP_GRANT.value,
                    delta=starting_balance,
                    balance_after=starting_balance,
                    reason="Starting allotment",
                ))
                await db.commit()
            except IntegrityError:
                # Unique username / email / google_id, including a concurrent signup
                await db.rollback()
                raise ValidationFailed("Username or email already exists")
            await db.refresh(user)
            return user

    async def update_qualtrics_credentials(
        self, user_id: int, api_token: str, datacenter: str, brand_id: str
    ) -> User:
        async with self._session_maker() as db:
            user = await self._get_user(db, user_id)
            if not user:
                raise UserNotFound(user_id)
            user.qualtrics_api_token = api_token
            user.qualtrics_datacenter = datacenter
            user.qualtrics_brand_id = brand_id
            await db.commit()
            await db.refresh(user)
            return user

    async def debit_tokens(
        self,
        user_id: int,
        amount: int,
        *,
        clamp: bool = False,
        reason: Optional[str] = None,
        reference: Optional[str] = None,
    ) -> DebitResult:
        async with self._session_maker() as db:
            for _ in range(MAX_CAS_ATTEMPTS):
                balance = await self._read_balance(db, user_id)
                if amount > balance and not clamp:
                    raise InsufficientTokens(balance, amount)
                charged = min(amount, balance)

                if not await self._compare_and_set(db, user_id, balance, balance - charged):
                    await db.rollback()
                    continue

                entry_reason = reason
                if charged < amount:
                    entry_reason = f"{reason or 'Usage'} (uncharged remainder: {amount - charged})"
                db.add(TokenTransaction(
                    user_id=user_id,
                    kind=TransactionKind.USAGE.value,
                    delta=-charged,
                    balance_after=balance - charged,
                    reason=entry_reason,
                    reference=reference,
                ))
                await db.commit()
                return DebitResult(charged=charged, requested=amount, balance=balance - charged)

        raise RuntimeError(f"Could not debit user {user_id}: balance kept changing")

    async def credit_tokens(
        self,
        user_id: int,
        amount: int,
        *,
        kind: TransactionKind = TransactionKind.PURCHASE,
        reason: Optional[str] = None,
        reference: Optional[str] = None,
        idempotency_key: Optional[str] = None,
    ) -> CreditResult:
        async with self._session_maker() as db:
            if idempotency_key and await self._has_transaction(db, idempotency_key):
                return CreditResult(applied=False, balance=await self._read_balance(db, user_id))

            for _ in range(MAX_CAS_ATTEMPTS):
                balance = await self._read_balance(db, user_id)
                if not await self._compare_and_set(db, user_id, balance, balance + amount):
                    await db.rollback()
                    continue

                db.add(TokenTransaction(
                    user_id=user_id,
                    kind=kind.value,
                    delta=amount,
                    balance_after=balance + amount,
                    reason=reason,
                    reference=reference,
                    idempotency_key=idempotency_key,
                ))
                try:
                    await db.commit()
                except IntegrityError:
                    # Same idempotency key committed concurrently
                    await db.rollback()
                    return CreditResult(applied=False, balance=await self._read_balance(db, user_id))
                return CreditResult(applied=True, balance=balance + amount)

        raise RuntimeError(f"Could not credit user {user_id}: balance kept changing")

    async def create_survey(self, user_id: int, qualtrics_id: str, name: str) -> Survey:
        async with self._session_maker() as db:
            survey = Survey(user_id=user_id, qualtrics_id=qualtrics_id, name=name)
            db.add(survey)
            await db.commit()
            await db.refresh(survey)
            return survey

    async def get_user_surveys(self, user_id: int) -> List[Survey]:
        async with self._session_maker() as db:
            result = await db.execute(
                select(Survey)
                .where(Survey.user_id == user_id)
                .order_by(Survey.created_at.desc(), Survey.id.desc())
            )
            return list(result.scalars().all())

    async def get_token_history(self, user_id: int, limit: int = 50) -> List[TokenTransaction]:
        async with self._session_maker() as db:
            result = await db.execute(
                select(TokenTransaction)
                .where(TokenTransaction.user_id == user_id)
                .order_by(TokenTransaction.id.desc())
                .limit(limit)
            )
            return list(result.scalars().all())

    # ── helpers ──────────────────────────────────────────────

    async def _get_user(self, db: AsyncSession, user_id: int) -> Optional[User]:
        result = await db.execute(select(User).where(User.id == user_id))
        return result.scalar_one_or_none()

    async def _read_balance(self, db: AsyncSession, user_id: int) -> int:
        result = await db.execute(select(User.token_balance).where(User.id == user_id))
        balance = result.scalar_one_or_none()
        if balance is None:
            raise UserNotFound(user_id)
        return balance

    async def _compare_and_set(
        self, db: AsyncSession, user_id: int, expected: int, new_balance: int
    ) -> bool:
        result = await db.execute(
            update(User)
            .where(User.id == user_id, User.token_balance == expected)
            .values(token_balance=new_balance)
        )
        return result.rowcount == 1

    async def _has_transaction(self, db: AsyncSession, idempotency_key: str) -> bool:
        result = await db.execute(
            select(TokenTransaction.id).where(TokenTransaction.idempotency_key == idempotency_key)
        )
        return result.scalar_one_or_none() is not None
