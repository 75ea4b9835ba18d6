"""
Fallback handling utilities for visible degraded paths.

When a shortcut, a side workflow, or the model itself fails and the wizard
continues with a substitute response, the substitution is logged here so it
shows up in monitoring instead of passing silently.

Usage:
    from party_wizard.utils.fallback import create_fallback_context, wrap_fallback

    try:
        timeline = await scheduler.generate(party_info, menu_plan)
    except Exception as exc:
        ctx = create_fallback_context(
            source="runtime.hil_tasks.auto_timeline",
            trigger="timeline_generation_failed",
            session_id=session_id,
            error=exc,
        )
        text = wrap_fallback("I couldn't build the timeline yet.", ctx)
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class FallbackContext:
    """Context information for a fallback event."""

    source: str  # e.g. "menu.url_shortcut"
    trigger: str  # e.g. "extraction_failed", "silent_completion"
    timestamp: str = field(
        default_factory=lambda: datetime.now(timezone.utc).isoformat(timespec="milliseconds")
    )

    session_id: Optional[str] = None
    step: Optional[str] = None
    error: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source,
            "trigger": self.trigger,
            "timestamp": self.timestamp,
            "session_id": self.session_id,
            "step": self.step,
            "error": self.error,
            **self.details,
        }


def create_fallback_context(
    source: str,
    trigger: str,
    *,
    session_id: Optional[str] = None,
    step: Optional[str] = None,
    error: Optional[BaseException] = None,
    **details: Any,
) -> FallbackContext:
    """
    Create a fallback context for tracking and debugging.

    Args:
        source: The code location (e.g., "menu.image_shortcut")
        trigger: What caused the fallback (e.g., "extraction_failed")
        session_id: Wizard session id if available
        step: Wizard step value if applicable
        error: The exception that caused the fallback
        details: Any extra key/value pairs worth logging

    Returns:
        FallbackContext with all relevant information
    """
    return FallbackContext(
        source=source,
        trigger=trigger,
        session_id=session_id,
        step=step,
        error=f"{type(error).__name__}: {error}" if error else None,
        details=details,
    )


def log_fallback(context: FallbackContext) -> None:
    """Log a fallback event for monitoring and debugging."""
    logger.warning(
        "[FALLBACK] source=%s trigger=%s step=%s session=%s",
        context.source,
        context.trigger,
        context.step,
        context.session_id,
    )
    if context.error:
        logger.warning("[FALLBACK]   error: %s", context.error)


def wrap_fallback(
    user_message: str,
    context: FallbackContext,
    *,
    include_dev_info: bool = False,
) -> str:
    """
    Log the fallback and return the user-facing message.

    With WIZARD_FALLBACK_DIAGNOSTICS=1 (or ``include_dev_info``) a short
    diagnostic suffix is appended for development use.
    """
    log_fallback(context)

    show_diagnostics = include_dev_info or os.getenv("WIZARD_FALLBACK_DIAGNOSTICS", "").lower() in ("1", "true", "yes")
    if show_diagnostics:
        dev_info = f"\n\n[DEV] Fallback: {context.source} | {context.trigger}"
        if context.error:
            dev_info += f" | Error: {context.error}"
        return user_message + dev_info
    return user_message


__all__ = [
    "FallbackContext",
    "create_fallback_context",
    "log_fallback",
    "wrap_fallback",
]
