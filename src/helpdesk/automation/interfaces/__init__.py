"""
Automation Interfaces Layer
===========================

FastAPI routes for automation rules and users.
"""

from helpdesk.automation.interfaces.controllers import automation_router

__all__ = ["automation_router"]
