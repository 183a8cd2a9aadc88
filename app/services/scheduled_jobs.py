"""
Project Delivery Platform
Scheduled Jobs.

Concrete job implementations that run on a schedule.

Jobs:
    - deadline_sweep: warns project managers about phases ending soon and
      assignees about deliverables falling due
"""

from __future__ import annotations

import logging
from typing import Any

from app.services.scheduler_service import register_job

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Job 1: Deadline Sweep
# ═══════════════════════════════════════════════════════════════════════════

@register_job("deadline_sweep")
def sweep_deadlines(app) -> dict[str, Any]:
    """Notify PMs and assignees of phases and deliverables due within the warning window."""
    from app.services import workflow_engine

    results = workflow_engine.check_deadlines()
    logger.info(
        "Deadline sweep: %d phase and %d deliverable warnings (window %d days)",
        results["phases_notified"], results["deliverables_notified"], results["window_days"],
        extra={"job_name": "deadline_sweep"},
    )
    return results
