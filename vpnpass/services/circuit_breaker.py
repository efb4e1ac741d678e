"""
Circuit breaker for external HTTP collaborators using pybreaker.
State is kept in process memory: each process polls the provider on its own.
"""
import logging

import pybreaker

from vpnpass.core.config import settings
from vpnpass.utils.metrics import circuit_breaker_state


logger = logging.getLogger("circuit_breaker")


class CircuitBreakerListener(pybreaker.CircuitBreakerListener):
    """Listener for circuit breaker events (logging/metrics)."""

    def __init__(self, name: str) -> None:
        self.name = name

    def state_change(self, cb: pybreaker.CircuitBreaker, old_state, new_state) -> None:
        old_name = getattr(old_state, "name", old_state)
        new_name = getattr(new_state, "name", new_state)
        circuit_breaker_state.labels(name=self.name).set(
            1 if new_name == pybreaker.STATE_OPEN else 0
        )
        logger.warning(
            "circuit_breaker_state_change",
            extra={
                "breaker_name": self.name,
                "old_state": str(old_name),
                "new_state": str(new_name),
            },
        )

    def failure(self, cb: pybreaker.CircuitBreaker, exc: BaseException) -> None:
        logger.warning(
            "circuit_breaker_failure",
            extra={
                "breaker_name": self.name,
                "error": type(exc).__name__,
            },
        )


_breakers: dict[str, pybreaker.CircuitBreaker] = {}


def get_circuit_breaker(name: str) -> pybreaker.CircuitBreaker:
    """Get or create a circuit breaker by name."""
    if name not in _breakers:
        _breakers[name] = pybreaker.CircuitBreaker(
            fail_max=settings.cb_failure_threshold,
            reset_timeout=settings.cb_open_seconds,
            listeners=[CircuitBreakerListener(name)],
            name=name,
        )
    return _breakers[name]


payment_provider_breaker = get_circuit_breaker("payment_provider")
