"""ORM model backing the secret store."""

from __future__ import annotations

from sqlalchemy import Column, DateTime, Integer, String, Text, UniqueConstraint, func

from .database import Base


class StoredSecret(Base):
    __tablename__ = "secrets"
    __table_args__ = (UniqueConstraint("namespace", "key", name="uq_secrets_namespace_key"),)

    id = Column(Integer, primary_key=True, autoincrement=True)
    namespace = Column(String(100), nullable=False)
    key = Column(String(200), nullable=False)
    value = Column(Text, nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
