from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime

from fastapi import FastAPI
from sqlalchemy.ext.asyncio import AsyncSession

from hris_billing.agents.health import AgentHealth
from hris_billing.core.billing.reconciler import CronReconciler
from hris_billing.core.config import settings
from hris_billing.core.db import AsyncSessionLocal
from hris_billing.core.dependencies import build_cron_reconciler
from hris_billing.models.base import utcnow

logger = logging.getLogger(__name__)

Sweep = Callable[[CronReconciler, datetime], Awaitable[dict[str, int]]]
SessionFactory = Callable[[], AbstractAsyncContextManager[AsyncSession]]


async def expire_subscriptions(reconciler: CronReconciler, now: datetime) -> dict[str, int]:
    result = await reconciler.expire_subscriptions(now)
    return {
        "past_due": result.past_due,
        "expired_after_grace": result.expired_after_grace,
        "expired_after_cancel": result.expired_after_cancel,
    }


async def expire_stale_invoices(reconciler: CronReconciler, now: datetime) -> dict[str, int]:
    return {"expired_invoices": await reconciler.expire_stale_invoices(now)}


async def apply_deferred_changes(reconciler: CronReconciler, now: datetime) -> dict[str, int]:
    result = await reconciler.apply_deferred_changes(now)
    return {"seats_applied": result.seats_applied, "plans_applied": result.plans_applied}


@dataclass(slots=True)
class SweepJob:
    name: str
    interval_seconds: int
    sweep: Sweep
    health: AgentHealth


def default_jobs() -> list[SweepJob]:
    return [
        SweepJob(
            name="update_expired_subscriptions",
            interval_seconds=settings.expire_subscriptions_interval_seconds,
            sweep=expire_subscriptions,
            health=AgentHealth(name="update_expired_subscriptions"),
        ),
        SweepJob(
            name="cleanup_stale_invoices",
            interval_seconds=settings.expire_invoices_interval_seconds,
            sweep=expire_stale_invoices,
            health=AgentHealth(name="cleanup_stale_invoices"),
        ),
        SweepJob(
            name="apply_pending_changes",
            interval_seconds=settings.apply_deferred_changes_interval_seconds,
            sweep=apply_deferred_changes,
            health=AgentHealth(name="apply_pending_changes"),
        ),
    ]


class BillingReconcilerAgent:
    """Runs each sweep in its own task on its own interval.

    Jobs share no in-process state; a failing job is logged and retried on its
    next tick without affecting the others.
    """

    def __init__(
        self,
        jobs: list[SweepJob] | None = None,
        session_factory: SessionFactory | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.jobs = jobs if jobs is not None else default_jobs()
        self.session_factory = session_factory or AsyncSessionLocal
        self.clock = clock
        self._stop_event = asyncio.Event()

    async def stop(self) -> None:
        self._stop_event.set()

    async def run(self) -> None:
        logger.info("Billing reconciler starting with %s jobs", len(self.jobs))
        await asyncio.gather(*(self._run_job(job) for job in self.jobs))

    async def _run_job(self, job: SweepJob) -> None:
        while not self._stop_event.is_set():
            await self.run_once(job)
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=job.interval_seconds)
            except asyncio.TimeoutError:
                continue

    async def run_once(self, job: SweepJob) -> None:
        job.health.mark_run()
        try:
            async with self.session_factory() as session:
                counts = await job.sweep(build_cron_reconciler(session), self.clock())
        except Exception as exc:
            job.health.mark_error(exc)
            logger.exception("Billing sweep %s failed, retrying next tick", job.name)
            return

        job.health.mark_success(counts)

    @property
    def healthy(self) -> bool:
        return all(job.health.healthy for job in self.jobs)

    @property
    def ready(self) -> bool:
        return all(job.health.ready for job in self.jobs)

    def payload(self) -> dict[str, object]:
        return {
            "name": "billing-reconciler",
            "healthy": self.healthy,
            "ready": self.ready,
            "jobs": [job.health.payload() for job in self.jobs],
        }


billing_agent = BillingReconcilerAgent()
app = FastAPI(title="HRIS Billing Reconciler")


@app.on_event("startup")
async def startup_event() -> None:
    logging.basicConfig(level=logging.INFO)
    app.state.task = asyncio.create_task(billing_agent.run())


@app.on_event("shutdown")
async def shutdown_event() -> None:
    await billing_agent.stop()
    task: asyncio.Task[None] = app.state.task
    task.cancel()
    with contextlib.suppress(asyncio.CancelledError):
        await task


@app.get("/health", tags=["system"])
async def health() -> dict[str, object]:
    return billing_agent.payload()


@app.get("/ready", tags=["system"])
async def ready() -> dict[str, bool]:
    return {"ready": billing_agent.ready}
