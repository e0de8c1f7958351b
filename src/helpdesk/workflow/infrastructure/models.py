"""
Workflow Infrastructure Models
==============================

SQLAlchemy ORM models for the workflow module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import ForeignKey, Integer, JSON, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.config import Priority, TicketStatus
from helpdesk.infrastructure.database import Base, UTCDateTime


class WorkflowModel(Base):
    """
    Database model for Workflow entity.

    Maps to the 'workflows' table.
    """
    __tablename__ = "workflows"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class WorkflowStageModel(Base):
    """
    Database model for an ordered workflow stage.

    Maps to the 'workflow_stages' table.
    """
    __tablename__ = "workflow_stages"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    workflow_id: Mapped[int] = mapped_column(ForeignKey("workflows.id"), nullable=False, index=True)
    position: Mapped[int] = mapped_column(Integer, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    approver_role: Mapped[str] = mapped_column(String(100), nullable=False)

    __table_args__ = (
        UniqueConstraint("workflow_id", "position", name="uq_workflow_stage_position"),
    )


class TicketModel(Base):
    """
    Database model for Ticket entity.

    Maps to the 'tickets' table. ``version`` is the optimistic concurrency
    counter: every UPDATE is conditioned on it and increments it.
    """
    __tablename__ = "tickets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    title: Mapped[str] = mapped_column(String(500), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    category: Mapped[str] = mapped_column(String(50), nullable=False, index=True)
    priority: Mapped[str] = mapped_column(String(50), nullable=False, default=Priority.MEDIUM.value)
    status: Mapped[str] = mapped_column(String(50), nullable=False, default=TicketStatus.DRAFT.value, index=True)

    # Workflow position
    workflow_id: Mapped[Optional[int]] = mapped_column(ForeignKey("workflows.id"), nullable=True)
    current_stage_index: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    # People
    assignee_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    requestor_id: Mapped[int] = mapped_column(Integer, nullable=False)

    # Timestamps
    due_date: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    status_changed_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class TicketHistoryModel(Base):
    """
    Database model for the append-only ticket history.

    Maps to the 'ticket_history' table. Rows are inserted, never updated.
    """
    __tablename__ = "ticket_history"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey("tickets.id"), nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(50), nullable=False)
    actor_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    details: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    comment: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    extra: Mapped[dict] = mapped_column("metadata", JSON, nullable=False, default=dict)
