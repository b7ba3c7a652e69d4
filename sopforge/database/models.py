"""SQLAlchemy models for the four artifact kinds.

Each table keeps the identifying and linking columns relational and the
artifact body as a JSON payload, so the store can replace an artifact in one
row write without interpreting free-form fields.
"""

import uuid
from datetime import datetime, timezone

from sqlalchemy import JSON, TIMESTAMP, ForeignKey, String, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from sopforge.core.database import Base


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SOPRecord(Base):
    """Root artifact; the only one carrying a pipeline status."""

    __tablename__ = "sops"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    process_name: Mapped[str] = mapped_column(String, nullable=False)
    department: Mapped[str] = mapped_column(String, nullable=False)
    status: Mapped[str] = mapped_column(String, nullable=False, default="GENERATED")
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=_utcnow, onupdate=_utcnow)


class WasteAuditRecord(Base):
    """MUDA audit, at most one per SOP."""

    __tablename__ = "waste_audits"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sop_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("sops.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    generation_source: Mapped[str] = mapped_column(String, nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=_utcnow)


class AgentSpecificationRecord(Base):
    """Microagent decomposition, at most one per SOP."""

    __tablename__ = "agent_specifications"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    sop_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("sops.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    generation_source: Mapped[str] = mapped_column(String, nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=_utcnow)


class PromptSetRecord(Base):
    """Master prompts, at most one set per agent specification."""

    __tablename__ = "prompt_sets"

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    agent_spec_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("agent_specifications.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    sop_id: Mapped[uuid.UUID] = mapped_column(Uuid, ForeignKey("sops.id", ondelete="CASCADE"), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=_utcnow)
    updated_at: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True), default=_utcnow, onupdate=_utcnow)
