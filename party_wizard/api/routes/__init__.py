"""
MODULE: party_wizard/api/routes/__init__.py
PURPOSE: FastAPI route handlers.

CONTAINS:
    - wizard.py      Party wizard sessions and chat (/api/parties/wizard/*)
"""

from .wizard import router as wizard_router

__all__ = ["wizard_router"]
