"""
Workflow Interfaces Layer
=========================

FastAPI routes for workflows and the ticket lifecycle.
"""

from helpdesk.workflow.interfaces.controllers import workflow_router

__all__ = ["workflow_router"]
