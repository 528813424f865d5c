"""Single-fire delivery of pairing outcomes."""

import asyncio
import threading

from broadcast_gateway.domain.sessions import PairingOutcome


class ResponseGate:
    """Deliver exactly one outcome to a waiting caller.

    Pairing-code issuance, transport failures and the timeout all race to
    resolve the same request. The first ``fire`` wins; later calls are no-ops.
    The timeout is armed on creation, so the gate must be built inside a
    running event loop.
    """

    def __init__(self, timeout_seconds: float) -> None:
        self._loop = asyncio.get_running_loop()
        self._future: asyncio.Future[PairingOutcome] = self._loop.create_future()
        self._lock = threading.Lock()
        self._outcome: PairingOutcome | None = None
        self._closed = False
        self._timer = self._loop.call_later(
            timeout_seconds, self.fire, PairingOutcome.timed_out()
        )

    @property
    def outcome(self) -> PairingOutcome | None:
        """The delivered outcome, if any source has fired."""
        return self._outcome

    def fire(self, outcome: PairingOutcome) -> bool:
        """Deliver ``outcome`` if nothing was delivered yet."""
        with self._lock:
            if self._closed or self._outcome is not None:
                return False
            self._outcome = outcome
        if self._on_own_loop():
            self._settle(outcome)
        else:
            self._loop.call_soon_threadsafe(self._settle, outcome)
        return True

    async def wait(self) -> PairingOutcome:
        """Wait for the single outcome."""
        return await self._future

    def cancel(self) -> None:
        """Disarm the timeout once the caller no longer waits."""
        with self._lock:
            self._closed = True
        self._timer.cancel()
        if not self._future.done():
            self._future.cancel()

    def _settle(self, outcome: PairingOutcome) -> None:
        self._timer.cancel()
        if not self._future.done():
            self._future.set_result(outcome)

    def _on_own_loop(self) -> bool:
        try:
            return asyncio.get_running_loop() is self._loop
        except RuntimeError:
            return False
