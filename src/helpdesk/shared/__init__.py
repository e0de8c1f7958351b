"""
Shared Kernel Module
====================

This module contains shared infrastructure and domain elements used across
all bounded contexts (Workflow, Automation and SLA Monitoring).

Architecture Pattern: Modular Monolith
- Each module (workflow, automation, sla) is a bounded context
- Shared kernel contains generic infrastructure and the domain event contract
- Domain models are extended within each module

DO NOT add business logic from Workflow, Automation or SLA to shared kernel.
"""

__version__ = "1.0.0"
