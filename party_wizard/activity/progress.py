"""
MODULE: party_wizard/activity/progress.py
PURPOSE: Convert a session's step and watermark to a progress bar representation.

Stages below the watermark count as completed, so navigating back to an
earlier step keeps later stages marked completed.
"""

from typing import Any, Dict, List

from party_wizard.domain.models import STEP_ORDER, WizardSession

STAGE_LABELS = {
    "party-info": "Party details",
    "guests": "Guests",
    "menu": "Menu",
    "timeline": "Timeline",
}


def get_progress(session: WizardSession) -> Dict[str, Any]:
    stages: List[Dict[str, str]] = []
    for step in STEP_ORDER:
        if step == session.current_step and session.status == "active":
            status = "active"
        elif step.position < session.furthest_step_index or session.status == "completed":
            status = "completed"
        else:
            status = "pending"
        stages.append({"id": step.value, "label": STAGE_LABELS[step.value], "status": status})

    reached = len(STEP_ORDER) if session.status == "completed" else session.furthest_step_index
    return {
        "current_stage": session.current_step.value,
        "stages": stages,
        "percentage": int(round(100 * reached / len(STEP_ORDER))),
    }


__all__ = ["get_progress"]
