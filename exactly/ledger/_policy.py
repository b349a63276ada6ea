"""
Ledger policy — lease and commit behavior.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True, slots=True)
class LedgerPolicy:
    """
    Ledger policy configuration.

    Fluent builder pattern — chain methods to configure.

    Example:
        policy = (
            LedgerPolicy()
            .with_lease(seconds=120)
            .with_relaxed()
        )

    lease_duration: must cover the longest single attempt. Defaults to the
    60 seconds a function invocation is allowed to run.

    relaxed: mark DONE right after taking the lease, before the side effect.
    A crash after marking loses the side effect for good, in exchange
    retries after a crash never wait for the lease to expire. Off by default.
    """

    lease_duration: timedelta = timedelta(seconds=60)
    relaxed: bool = False

    def with_lease(
        self,
        *,
        seconds: float | None = None,
        minutes: float | None = None,
        delta: timedelta | None = None,
    ) -> LedgerPolicy:
        """
        Set lease duration.

        Example:
            .with_lease(seconds=60)
            .with_lease(minutes=5)
            .with_lease(delta=timedelta(seconds=90))
        """
        if delta is not None:
            duration = delta
        else:
            total_seconds = (seconds or 0) + (minutes or 0) * 60
            if total_seconds <= 0:
                raise ValueError("Lease duration must be positive")
            duration = timedelta(seconds=total_seconds)

        return LedgerPolicy(
            lease_duration=duration,
            relaxed=self.relaxed,
        )

    def with_relaxed(self, relaxed: bool = True) -> LedgerPolicy:
        """
        Commit before running the side effect (at most once).

        Example:
            .with_relaxed()       # mark DONE first
            .with_relaxed(False)  # back to exactly once
        """
        return LedgerPolicy(
            lease_duration=self.lease_duration,
            relaxed=relaxed,
        )


__all__ = ("LedgerPolicy",)
