"""Registry that manages the lifecycle of probers."""

from __future__ import annotations

import threading

from depwatch.prober import Prober


class ProberManager:
    """Holds probers keyed by namespace."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._probers: dict[str, Prober] = {}

    def register(self, prober: Prober) -> bool:
        """Add the prober; return False if one is already registered under its key."""
        key = prober.namespace
        with self._lock:
            if key in self._probers:
                return False
            self._probers[key] = prober
            return True

    def unregister(self, key: str) -> bool:
        """Close and remove the prober for key; return False if there is none."""
        with self._lock:
            prober = self._probers.pop(key, None)
        if prober is None:
            return False
        prober.close()
        return True

    def get_prober(self, key: str) -> Prober | None:
        """Return the prober registered under key, or None."""
        with self._lock:
            return self._probers.get(key)

    def get_all_probers(self) -> list[Prober]:
        """Return all registered probers."""
        with self._lock:
            return list(self._probers.values())