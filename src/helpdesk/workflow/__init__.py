"""
Ticket Workflow Module
======================

Bounded Context for tickets and their multi-stage approval workflows.

Responsibilities:
- Move tickets through Draft, InApproval, Approved/Rejected, InProgress,
  Completed and Closed
- Enforce approver roles per workflow stage
- Keep an append-only history per ticket
- Notify lifecycle observers (automation, SLA tracking) of every change
"""

__version__ = "1.0.0"
