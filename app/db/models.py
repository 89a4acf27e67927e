"""
Database models for SurveyPilot

- Users with their Qualtrics credentials and token balance
- Surveys published to Qualtrics
- Immutable token ledger (every balance mutation)
"""

from datetime import datetime
from typing import Optional
from enum import Enum

from sqlalchemy import (
    String, Text, DateTime, Integer, ForeignKey, Index, CheckConstraint
)
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy.ext.declarative import declarative_base

Base = declarative_base()


class TransactionKind(str, Enum):
    """Why a token balance changed"""
    SIGNUP_GRANT = "signup_grant"   # Starting allotment at registration
    USAGE = "usage"                 # AI call charged at provider-reported cost
    PURCHASE = "purchase"           # Confirmed Stripe payment


class User(Base):
    """Account, integration credentials and pre-paid token balance"""
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    hashed_password: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)  # None for OAuth users
    google_id: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    email: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)

    # Qualtrics integration (unset until the user saves settings)
    qualtrics_api_token: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    qualtrics_datacenter: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    qualtrics_brand_id: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)

    token_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        CheckConstraint("token_balance >= 0", name="ck_users_token_balance_non_negative"),
    )

    @property
    def qualtrics_configured(self) -> bool:
        return bool(
            self.qualtrics_api_token
            and self.qualtrics_datacenter
            and self.qualtrics_brand_id
        )


class Survey(Base):
    """A survey created on Qualtrics. Written once, never updated."""
    __tablename__ = "surveys"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    qualtrics_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(500), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_surveys_user_id", "user_id"),
    )


class TokenTransaction(Base):
    """Immutable ledger entry for a token balance mutation."""
    __tablename__ = "token_transactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(Integer, ForeignKey("users.id"), nullable=False)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)  # TransactionKind
    delta: Mapped[int] = mapped_column(Integer, nullable=False)  # Signed
    balance_after: Mapped[int] = mapped_column(Integer, nullable=False)
    reason: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    reference: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)  # Stripe event, Qualtrics id
    idempotency_key: Mapped[Optional[str]] = mapped_column(String(255), unique=True, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow)

    __table_args__ = (
        Index("ix_token_transactions_user_created", "user_id", "created_at"),
    )
