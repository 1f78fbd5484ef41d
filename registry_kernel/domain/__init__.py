"""Pure kernel domain helpers (no I/O except SystemClock)."""

from registry_kernel.domain.clock import Clock, DeterministicClock, SystemClock

__all__ = ["Clock", "SystemClock", "DeterministicClock"]
