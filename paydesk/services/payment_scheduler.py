from __future__ import annotations

import logging
import os
import threading
from datetime import date, datetime, timezone
from typing import Any, Callable, Optional

from sqlalchemy.exc import DBAPIError, OperationalError

from paydesk.database import SessionLocal
from paydesk.services.reconciliation_service import (
    ReconciliationResult,
    acquire_reconciliation_lock,
    reconcile_due_payments,
    release_reconciliation_lock,
    try_acquire_reconciliation_lock,
)

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL_SECONDS = 3600.0

PassRunner = Callable[[Optional[date]], Optional[ReconciliationResult]]


def _env_float(name: str, default: float) -> float:
    v = os.getenv(name)
    if v is None or v == "":
        return default
    try:
        return float(v)
    except ValueError:
        return default


def payment_scheduler_enabled() -> bool:
    # Disable by default under pytest to keep tests deterministic.
    if os.getenv("PYTEST_CURRENT_TEST"):
        return False
    v = os.getenv("PAYMENT_SCHEDULER_ENABLED")
    if v is None:
        return True
    return v.strip() not in {"0", "false", "False", "no", "NO"}


def run_locked_reconciliation(reference_date: Optional[date] = None) -> Optional[ReconciliationResult]:
    """
    Scheduled pass guarded by a Postgres advisory lock so that only one
    process (e.g. under uvicorn --reload or several workers) reconciles at a
    time. Returns None when another process holds the lock.
    """
    lock_db = SessionLocal()
    have_lock = False
    try:
        have_lock = try_acquire_reconciliation_lock(lock_db)
        if not have_lock:
            logger.info("Reconciliation lock held elsewhere; skipping pass")
            return None

        return reconcile_due_payments(reference_date=reference_date)
    finally:
        try:
            if have_lock:
                release_reconciliation_lock(lock_db)
        finally:
            lock_db.close()


def run_manual_reconciliation(reference_date: Optional[date] = None) -> ReconciliationResult:
    """
    Manual pass. Unlike scheduled ticks it never skips: it waits for the
    advisory lock, so it cannot overlap a pass running in another process.
    """
    lock_db = SessionLocal()
    have_lock = False
    try:
        acquire_reconciliation_lock(lock_db)
        have_lock = True
        return reconcile_due_payments(reference_date=reference_date)
    finally:
        try:
            if have_lock:
                release_reconciliation_lock(lock_db)
        finally:
            lock_db.close()


class PaymentScheduler:
    """
    Owns the recurring reconciliation timer.

    States: stopped -> running -> stopped. start() and stop() are idempotent
    and never wait on an in-flight pass; stop() only prevents the next one.
    Passes never overlap: a tick that finds a pass in flight is skipped.
    """

    def __init__(
        self,
        run_pass: Optional[PassRunner] = None,
        *,
        manual_pass: Optional[Callable[[Optional[date]], ReconciliationResult]] = None,
        interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
    ):
        # run_pass serves timer ticks and may return None (skipped elsewhere);
        # manual_pass always runs and always returns a result.
        self._run_pass = run_pass or run_locked_reconciliation
        self._manual_pass = manual_pass or run_manual_reconciliation
        self.interval_seconds = float(interval_seconds)

        self._state_lock = threading.Lock()
        self._pass_lock = threading.Lock()

        self._stop_event: Optional[threading.Event] = None
        self._thread: Optional[threading.Thread] = None

        self.last_run_at: Optional[datetime] = None
        self.last_result: Optional[ReconciliationResult] = None

    @classmethod
    def from_env(cls) -> "PaymentScheduler":
        interval = _env_float("PAYMENT_SCHEDULER_INTERVAL_SECONDS", DEFAULT_INTERVAL_SECONDS)
        if interval <= 0:
            interval = DEFAULT_INTERVAL_SECONDS
        return cls(interval_seconds=interval)

    @property
    def running(self) -> bool:
        return self._stop_event is not None

    def start(self) -> bool:
        """Returns False when already running."""
        with self._state_lock:
            if self._stop_event is not None:
                logger.info("Payment scheduler is already running")
                return False

            stop_event = threading.Event()
            thread = threading.Thread(
                target=self._loop,
                args=(stop_event,),
                name="payment-scheduler",
                daemon=True,
            )
            self._stop_event = stop_event
            self._thread = thread
            thread.start()

        logger.info(
            "Payment scheduler started",
            extra={"interval_seconds": self.interval_seconds},
        )
        return True

    def stop(self) -> bool:
        """Returns False when already stopped."""
        with self._state_lock:
            if self._stop_event is None:
                return False

            self._stop_event.set()
            self._stop_event = None
            self._thread = None

        logger.info("Payment scheduler stopped")
        return True

    def restart(self) -> None:
        self.stop()
        self.start()

    def status(self) -> dict[str, Any]:
        return {
            "running": self.running,
            "interval_seconds": self.interval_seconds,
            "last_run_at": None if self.last_run_at is None else self.last_run_at.isoformat(),
            "last_result": None if self.last_result is None else self.last_result.as_dict(),
        }

    def run_manual_check(self, reference_date: Optional[date] = None) -> ReconciliationResult:
        """Same pass as the timer. Waits for an in-flight pass here, and by default for one in another process."""
        with self._pass_lock:
            logger.info(
                "Running manual payment check",
                extra={"reference_date": None if reference_date is None else reference_date.isoformat()},
            )
            result = self._manual_pass(reference_date)
            self._record(result)
            return result

    def _record(self, result: Optional[ReconciliationResult]) -> None:
        self.last_run_at = datetime.now(timezone.utc)
        if result is not None:
            self.last_result = result

    def _tick(self) -> None:
        if not self._pass_lock.acquire(blocking=False):
            logger.warning("Reconciliation pass still running; skipping tick")
            return

        try:
            result = self._run_pass(None)
            self._record(result)

        except (OperationalError, DBAPIError):
            logger.exception(
                "Payment scheduler tick failed",
                extra={"component": "payment_scheduler", "reason": "dbapi_error"},
            )

        except Exception:
            # Never let a failed pass end the schedule.
            logger.exception(
                "Payment scheduler tick failed",
                extra={"component": "payment_scheduler", "reason": "unexpected"},
            )

        finally:
            self._pass_lock.release()

    def _loop(self, stop_event: threading.Event) -> None:
        while not stop_event.is_set():
            self._tick()
            if stop_event.wait(self.interval_seconds):
                break

        logger.info("Payment scheduler loop exited")
