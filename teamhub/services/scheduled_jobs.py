"""Jobs registered with the scheduler when the app is created."""

from __future__ import annotations

from typing import Any

from teamhub.services.scheduler_service import register_job


@register_job("chat_status_reconciliation")
def chat_status_reconciliation(app) -> dict[str, Any]:
    """Re-mirror drifted bound chats and back-fill missing display snapshots."""
    from teamhub.services.reconciliation import reconcile_bound_chats

    return reconcile_bound_chats()
