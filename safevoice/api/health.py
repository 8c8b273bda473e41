"""Health and lightweight operational stats endpoints."""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Request

router = APIRouter(prefix="/api/v1/health", tags=["health"])


def _get_scheduler_status(request: Request) -> tuple[str, dict[str, str | None]]:
    scheduler = getattr(request.app.state, "scheduler", None)
    if scheduler is None:
        return "not_initialized", {}
    try:
        status = "running" if scheduler.running else "stopped"
    except Exception:  # noqa: BLE001
        return "unknown", {}

    jobs: dict[str, str | None] = {}
    try:
        for job in scheduler.get_jobs():
            next_run = getattr(job, "next_run_time", None)
            jobs[job.id] = next_run.isoformat() if next_run else None
    except Exception:  # noqa: BLE001
        jobs = {}
    return status, jobs


@router.get("")
async def health_check(request: Request) -> dict[str, Any]:
    """Report core dependency health."""
    mongodb_status = "disconnected"
    scheduler_status, scheduler_jobs = _get_scheduler_status(request)

    db = getattr(request.app.state, "mongo_db", None)
    if db is not None:
        try:
            await db.command("ping")
            mongodb_status = "connected"
        except Exception:  # noqa: BLE001
            try:
                await db.list_collection_names()
                mongodb_status = "connected"
            except Exception:  # noqa: BLE001
                mongodb_status = "disconnected"

    reconciler = getattr(request.app.state, "reconciler", None)
    if reconciler is None:
        reconciler_status = "disabled"
    else:
        reconciler_status = "stopped" if reconciler.stopped else "active"

    overall = "healthy" if mongodb_status == "connected" else "unhealthy"
    return {
        "status": overall,
        "mongodb": mongodb_status,
        "scheduler": scheduler_status,
        "scheduler_jobs": scheduler_jobs,
        "reconciler": reconciler_status,
    }


@router.get("/stats")
async def health_stats(request: Request) -> dict[str, Any]:
    """Return report and notification counts."""
    store = getattr(request.app.state, "report_store", None)
    inbox = getattr(request.app.state, "notification_inbox", None)
    if store is None or inbox is None:
        return {"active_reports": 0, "draft_reports": 0, "status_counts": {}, "badge_count": 0}

    status_counts: dict[str, int] = {}
    active = store.list_active()
    for report in active:
        status_counts[str(report.status)] = status_counts.get(str(report.status), 0) + 1

    return {
        "active_reports": len(active),
        "draft_reports": len(store.list_drafts()),
        "status_counts": status_counts,
        "badge_count": inbox.badge_count(),
    }
