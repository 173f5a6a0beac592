"""
Recurrence scheduler

Periodically reposts expired recurring deals. Runs as a background asyncio
task next to the API and can also be triggered on demand.

Every tick re-examines every expired recurring deal. A template is only
marked as reposted after its successor is written, so a repost that failed
is retried on the next tick (at-least-once). The unique successor slot keeps
retries and concurrent sweeps from writing a second successor.
"""
import asyncio
import logging
from datetime import datetime
from typing import Callable, Dict, Optional

from dealdrop.core.config import settings
from dealdrop.services.deal_lifecycle import DealLifecycle
from dealdrop.services.deal_store import DealStore

logger = logging.getLogger(__name__)


class RecurrenceScheduler:
    """Timer-driven sweep over expired recurring deals."""
    
    def __init__(
        self,
        store: DealStore,
        lifecycle: DealLifecycle,
        interval_seconds: float = settings.RECURRENCE_SWEEP_INTERVAL_SECONDS,
        clock: Optional[Callable[[], datetime]] = None
    ):
        self.store = store
        self.lifecycle = lifecycle
        self.interval_seconds = interval_seconds
        self.clock = clock or store.clock
        self.running = False
        self.task: Optional[asyncio.Task] = None
        self._sweep_lock = asyncio.Lock()
    
    async def start(self):
        """Start the background sweep"""
        if self.running:
            logger.warning("Recurrence scheduler is already running")
            return
        
        self.running = True
        self.task = asyncio.create_task(self._run())
        logger.info(f"Recurrence scheduler started (every {self.interval_seconds}s)")
    
    async def stop(self):
        """Stop the background sweep"""
        if not self.running:
            return
        
        self.running = False
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
        logger.info("Recurrence scheduler stopped")
    
    async def _run(self):
        """Main loop: sweep, then wait for the next tick"""
        while self.running:
            try:
                await self.run_sweep()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Recurrence sweep failed, retrying next tick: {e}", exc_info=True)
            try:
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                break
    
    async def run_sweep(self) -> Dict[str, int]:
        """
        Run one sweep.
        
        Each deal is handled on its own; a failure is logged and the sweep
        moves on.
        
        Returns:
            Counts of deals ``examined`` (expired and recurring), ``processed``
            (reposted) and ``failed``.
        """
        async with self._sweep_lock:
            now = self.clock()
            recurring = await self.store.list_expired_deals(now, recurring_only=True)
            
            processed = 0
            failed = 0
            for deal in recurring:
                try:
                    if not self.lifecycle.repost_due(deal, now):
                        continue
                    if await self.lifecycle.auto_repost(deal, now):
                        processed += 1
                except Exception as e:
                    failed += 1
                    logger.error(f"Error reposting recurring deal {deal.get('_id')}: {e}", exc_info=True)
            
            logger.info(
                f"Recurrence sweep: {len(recurring)} expired recurring, "
                f"{processed} reposted, {failed} failed"
            )
            return {"processed": processed, "examined": len(recurring), "failed": failed}
