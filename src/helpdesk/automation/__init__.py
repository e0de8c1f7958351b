"""
Automation Module
=================

Bounded Context for ticket automation rules.

Responsibilities:
- Keyword prioritization of new tickets
- Category assignment with per-role round-robin
- Time-based escalation evaluated by the scheduler sweep
- Hot-reloadable YAML rule configuration
"""

__version__ = "1.0.0"
