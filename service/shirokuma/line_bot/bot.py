"""
Main LINE bot entry point.

Builds the dispatcher once at startup and feeds it webhook event batches.
"""

from typing import Any, Dict, List, Optional

from shirokuma.config import get_settings
from shirokuma.logging_config import bot_logger as logger
from shirokuma.services.assets import Assets, load_assets
from shirokuma.services.completion import close_completion_client, get_completion_client
from shirokuma.services.diagnosis import DiagnosisService
from shirokuma.services.job_guard import InMemoryRecentJobStore, UserLockRegistry
from shirokuma.services.storage import get_report_uploader
from shirokuma.line_bot.forwarder import EventForwarder
from shirokuma.line_bot.handlers import DiagnosisDispatcher
from shirokuma.line_bot.line_api import close_line_client, get_line_client


# Global dispatcher instance (initialized once)
_dispatcher: Optional[DiagnosisDispatcher] = None


def get_dispatcher() -> DiagnosisDispatcher:
    """Get the dispatcher; initialize_bot() must have run."""
    if _dispatcher is None:
        raise RuntimeError("Bot is not initialized")
    return _dispatcher


def build_dispatcher(assets: Optional[Assets] = None) -> DiagnosisDispatcher:
    settings = get_settings()
    assets = assets or load_assets(settings.data_dir)

    diagnosis = DiagnosisService(
        assets=assets,
        completion=get_completion_client(),
        uploader=get_report_uploader(),
        cycle_epoch=settings.cycle_epoch,
        stem_epoch=settings.stem_epoch,
    )
    forwarder = EventForwarder(settings.secondary_webhook_url) if settings.secondary_webhook_url else None

    return DiagnosisDispatcher(
        diagnosis=diagnosis,
        line=get_line_client(),
        job_store=InMemoryRecentJobStore(ttl_seconds=settings.dedup_ttl_seconds),
        locks=UserLockRegistry(),
        forwarder=forwarder,
    )


async def handle_webhook_events(events: List[Dict[str, Any]]) -> None:
    """
    Process a webhook batch.

    Events are handled one after another; a failure in one event never
    stops its siblings.
    """
    dispatcher = get_dispatcher()
    for event in events:
        try:
            await dispatcher.handle_event(event)
        except Exception as e:
            logger.error(f"Failed to process event: {e}", exc_info=True)


async def initialize_bot(assets: Optional[Assets] = None) -> DiagnosisDispatcher:
    """
    Initialize the dispatcher (call on startup).

    Raises on missing configuration or asset files.
    """
    global _dispatcher
    _dispatcher = build_dispatcher(assets)
    logger.info(
        f"Bot initialized with {len(_dispatcher.diagnosis.assets.templates)} templates"
    )
    return _dispatcher


async def shutdown_bot() -> None:
    """
    Drain background jobs and close clients (call on shutdown).
    """
    global _dispatcher
    if _dispatcher:
        await _dispatcher.drain()
        if _dispatcher.forwarder is not None:
            await _dispatcher.forwarder.close()
        _dispatcher = None
    await close_completion_client()
    await close_line_client()
    logger.info("Bot shut down")
