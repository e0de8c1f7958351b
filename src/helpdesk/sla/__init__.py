"""
SLA Module
==========

Bounded Context for service level tracking.

Responsibilities:
- Match each new ticket to the most specific active SLA policy
- Track response, resolution and approval times per ticket
- Detect warnings and breaches, record breaches once per dimension
- Sweep open metrics periodically and run escalation rules
- Compliance reporting and breach acknowledgment
"""
