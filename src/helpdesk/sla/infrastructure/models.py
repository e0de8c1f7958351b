"""
SLA Infrastructure Models
==========================

SQLAlchemy ORM models for SLA module.

These are the database representations of our domain entities.
They belong in the infrastructure layer, not the domain layer.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import Boolean, ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from helpdesk.config import SLABreachStatus, SLAStatus
from helpdesk.infrastructure.database import Base, UTCDateTime


class SLAPolicyModel(Base):
    """
    Database model for SLA Policy entity.

    Maps to the 'sla_policies' table. NULL criteria columns are wildcards.
    """
    __tablename__ = "sla_policies"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False, default="")

    # Matching criteria
    category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    priority: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    workflow_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Targets (minutes)
    response_time_mins: Mapped[int] = mapped_column(Integer, nullable=False)
    resolution_time_mins: Mapped[int] = mapped_column(Integer, nullable=False)
    approval_time_mins: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    warning_threshold: Mapped[int] = mapped_column(Integer, nullable=False, default=80)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)


class SLAMetricModel(Base):
    """
    Database model for the per-ticket SLA metric.

    Maps to the 'sla_metrics' table. One row per ticket; targets are
    snapshots of the policy at creation time.
    """
    __tablename__ = "sla_metrics"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    ticket_id: Mapped[int] = mapped_column(ForeignKey("tickets.id"), nullable=False, unique=True)
    policy_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    ticket_created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)

    # Snapshot of policy targets
    target_response_time_mins: Mapped[int] = mapped_column(Integer, nullable=False)
    target_resolution_time_mins: Mapped[int] = mapped_column(Integer, nullable=False)
    target_approval_time_mins: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    warning_threshold: Mapped[int] = mapped_column(Integer, nullable=False)

    # Milestones
    first_response_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    resolved_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    approval_started_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    approval_completed_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    response_time_mins: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    resolution_time_mins: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    approval_time_mins: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Status
    response_status: Mapped[str] = mapped_column(String(20), nullable=False, default=SLAStatus.WITHIN_SLA.value)
    resolution_status: Mapped[str] = mapped_column(String(20), nullable=False, default=SLAStatus.WITHIN_SLA.value)
    approval_status: Mapped[str] = mapped_column(String(20), nullable=False, default=SLAStatus.WITHIN_SLA.value)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SLAStatus.WITHIN_SLA.value, index=True)

    last_evaluated_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    finalized_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}


class SLABreachModel(Base):
    """
    Database model for SLA Breach entity.

    Maps to the 'sla_breaches' table. The unique constraint keeps breach
    creation idempotent per metric and dimension.
    """
    __tablename__ = "sla_breaches"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    metric_id: Mapped[int] = mapped_column(ForeignKey("sla_metrics.id"), nullable=False, index=True)
    ticket_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    policy_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)

    breach_type: Mapped[str] = mapped_column(String(50), nullable=False)
    actual_mins: Mapped[int] = mapped_column(Integer, nullable=False)
    target_mins: Mapped[int] = mapped_column(Integer, nullable=False)
    overage_mins: Mapped[int] = mapped_column(Integer, nullable=False)
    breached_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    stage_index: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Acknowledgment
    status: Mapped[str] = mapped_column(String(20), nullable=False, default=SLABreachStatus.OPEN.value, index=True)
    acknowledged_at: Mapped[Optional[datetime]] = mapped_column(UTCDateTime, nullable=True)
    acknowledged_by: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    resolution_notes: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        UniqueConstraint("metric_id", "breach_type", name="uq_sla_breach_metric_type"),
    )
