"""SafeVoice FastAPI application entry point."""

import logging
import logging.config
from contextlib import asynccontextmanager
from datetime import timedelta
from pathlib import Path

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI

from safevoice.api import health, notifications, reports
from safevoice.clients import HttpReportSubmitter, HttpStatusFeed
from safevoice.config import Settings, get_settings, load_logging_config
from safevoice.errors import PersistenceError
from safevoice.lifecycle import ReportStore, StatusReconciler
from safevoice.logging_setup import configure_structured_logging
from safevoice.notifications import (
    AlertScheduler,
    DisabledNotificationDeliverer,
    NotificationDeduplicator,
    NotificationInbox,
    WebhookNotificationDeliverer,
)
from safevoice.repositories import MongoKeyValueStore
from safevoice.repositories.mongo import create_mongo_client, ensure_indexes, get_database
from safevoice.utils import FailureBackoff

logger = logging.getLogger(__name__)


def setup_logging(config_path: str | Path = "config/logging.yaml") -> None:
    """Load logging configuration from YAML."""
    config = load_logging_config(config_path)
    if config is not None:
        # Ensure log directory exists
        Path("data").mkdir(exist_ok=True)
        logging.config.dictConfig(config)
    else:
        logging.basicConfig(level=logging.INFO, format="%(message)s")
    configure_structured_logging()


def _log_persistence_error(error: PersistenceError) -> None:
    logger.error("Durable write failed for key=%s: %s", error.key, error.cause)


def build_deliverer(settings: Settings):
    if settings.notification_webhook_url:
        return WebhookNotificationDeliverer(
            settings.notification_webhook_url,
            timeout_seconds=settings.notification_timeout_seconds,
        )
    return DisabledNotificationDeliverer()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown lifecycle."""
    settings = get_settings()
    setup_logging(settings.logging_config_path)
    logger.info("SafeVoice starting up...")
    mongo_client = None
    scheduler: AsyncIOScheduler | None = None
    submitter: HttpReportSubmitter | None = None
    status_feed: HttpStatusFeed | None = None
    deliverer = None
    reconciler: StatusReconciler | None = None

    try:
        mongo_client = await create_mongo_client(settings.mongodb_uri)
        mongo_db = get_database(mongo_client, settings.mongodb_database)
        await ensure_indexes(mongo_db)
        state_store = MongoKeyValueStore(mongo_db)
        app.state.mongo_client = mongo_client
        app.state.mongo_db = mongo_db
        app.state.settings = settings

        submitter = HttpReportSubmitter(
            settings.submission_api_url,
            timeout_seconds=settings.submission_timeout_seconds,
            retry_attempts=settings.submission_retry_attempts,
        )
        deliverer = build_deliverer(settings)

        scheduler = AsyncIOScheduler(timezone=settings.notification_timezone)
        alert_scheduler = AlertScheduler(
            scheduler,
            deliverer,
            timezone_name=settings.notification_timezone,
        )
        inbox = NotificationInbox(
            state_store,
            deliverer,
            alert_scheduler,
            on_persistence_error=_log_persistence_error,
        )
        deduplicator = NotificationDeduplicator(
            inbox,
            window_seconds=settings.notification_dedup_window_seconds,
            disguise=settings.disguise_notifications,
            draft_reminder_delay=timedelta(hours=settings.draft_reminder_delay_hours),
            check_in_delay=timedelta(hours=settings.check_in_delay_hours),
        )
        store = ReportStore(
            state_store,
            submitter,
            on_persistence_error=_log_persistence_error,
        )
        store.subscribe(deduplicator.handle_status_update)

        # Alerts scheduled while restoring state need a running scheduler.
        scheduler.start()
        await store.load()
        await inbox.load()
        caught_up = await deduplicator.scan_reports(store.list_active())
        logger.info("Startup scan created %s notification(s).", len(caught_up))

        if settings.reconcile_enabled and settings.status_api_url:
            status_feed = HttpStatusFeed(
                settings.status_api_url,
                timeout_seconds=settings.status_fetch_timeout_seconds,
            )
            reconciler = StatusReconciler(
                store,
                status_feed,
                fetch_timeout_seconds=settings.status_fetch_timeout_seconds,
                max_concurrency=settings.reconcile_max_concurrency,
                backoff=FailureBackoff(
                    base_seconds=settings.reconcile_backoff_base_seconds,
                    cap_seconds=settings.reconcile_backoff_cap_seconds,
                ),
            )
            scheduler.add_job(
                reconciler.run_cycle,
                trigger="interval",
                seconds=settings.reconcile_interval_seconds,
                id="status_reconciler",
                replace_existing=True,
                coalesce=True,
                max_instances=1,
            )
            logger.info("Status reconciler scheduled (interval=%ss).", settings.reconcile_interval_seconds)
        else:
            logger.info("Status reconciliation disabled by configuration.")

        app.state.scheduler = scheduler
        app.state.report_store = store
        app.state.notification_inbox = inbox
        app.state.deduplicator = deduplicator
        app.state.alert_scheduler = alert_scheduler
        app.state.reconciler = reconciler

        logger.info("SafeVoice ready.")
        yield
    finally:
        logger.info("SafeVoice shutting down...")
        if scheduler is not None and scheduler.running:
            scheduler.shutdown(wait=False)
        if reconciler is not None:
            await reconciler.stop()
        if submitter is not None:
            await submitter.close()
        if status_feed is not None:
            await status_feed.close()
        if isinstance(deliverer, WebhookNotificationDeliverer):
            await deliverer.close()
        if mongo_client is not None:
            mongo_client.close()


app = FastAPI(
    title="SafeVoice",
    description="Report lifecycle and notification service for safe incident reporting",
    version="0.1.0",
    lifespan=lifespan,
)
app.include_router(health.router)
app.include_router(reports.router)
app.include_router(notifications.router)


@app.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {"status": "healthy", "version": "0.1.0"}
