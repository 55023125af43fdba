"""
ReservationExpirySweeper -- in-process polling loop for reservation expiry.

Contract:
    Every interval, finds the tenants holding due reservations and runs
    ``InventoryService.expire_reservations`` for each.  Each tenant is its
    own unit of work; a failure for one tenant is logged and the sweep
    moves on.

Invariants enforced:
    - Expiry is decided against the service's injected Clock.
    - Graceful shutdown: ``stop()`` is honoured between tenants.
"""

from __future__ import annotations

import threading
from uuid import UUID

from inventory_kernel.logging_config import get_logger
from inventory_services.inventory_service import InventoryService

logger = get_logger("services.reservation_sweeper")


class ReservationExpirySweeper:
    """Background sweeper for expired reservations.

    Contract:
        - ``tick()`` sweeps once and returns the number expired.
        - ``start()`` / ``stop()`` for background thread operation.

    Non-goals:
        - NOT a distributed scheduler (run one per deployment).
    """

    def __init__(
        self,
        service: InventoryService,
        actor_id: UUID,
        interval_seconds: float = 60.0,
    ):
        self._service = service
        self._actor_id = actor_id
        self._interval = interval_seconds
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def tick(self) -> int:
        """Expire every due reservation across tenants (public for testing)."""
        expired = 0
        for tenant_id in self._service.tenants_with_due_reservations():
            if self._stop_event.is_set():
                break
            try:
                result = self._service.expire_reservations(tenant_id, self._actor_id)
            except Exception:
                logger.exception("reservation_sweep_failed", extra={"tenant_id": str(tenant_id)})
                continue
            expired += len(result.value)

        if expired:
            logger.info("reservation_sweep_completed", extra={"expired": expired})
        return expired

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run_loop,
            name="reservation-expiry-sweeper",
            daemon=True,
        )
        self._thread.start()
        logger.info("reservation_sweeper_started", extra={"interval_seconds": self._interval})

    def stop(self, timeout: float = 30.0) -> None:
        """Signal stop and wait for the current sweep to finish."""
        self._stop_event.set()
        if self._thread is not None and self._thread.is_alive():
            self._thread.join(timeout=timeout)
        logger.info("reservation_sweeper_stopped")

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                self.tick()
            except Exception:
                logger.exception("reservation_sweep_exception")
            self._stop_event.wait(timeout=self._interval)
