"""Subscription registry shared by the push API and its receive loop.

The public methods of PushManager may be called from any thread while the
receive loop runs on the event loop, so the mapping is guarded by a plain
lock. Each critical section is a single read or write. Lookups hand the
callback back to the caller, which invokes it after the lock is released:
a slow or re-entrant callback can never block subscribe/unsubscribe.
"""

import threading
from typing import Any, Callable, Dict, Optional

from .protocol import normalize_mac

StateCallback = Callable[[str, dict], Any]
DiscoveryCallback = Callable[[Any], Any]


class SubscriptionRegistry:
    def __init__(self):
        self._lock = threading.Lock()
        self._callbacks: Dict[str, StateCallback] = {}
        self._discovery_callback: Optional[DiscoveryCallback] = None

    def subscribe(self, mac: str, callback: StateCallback) -> None:
        key = normalize_mac(mac)
        with self._lock:
            self._callbacks[key] = callback

    def unsubscribe(self, mac: str) -> None:
        key = normalize_mac(mac)
        with self._lock:
            self._callbacks.pop(key, None)

    def get(self, mac: str) -> Optional[StateCallback]:
        key = normalize_mac(mac)
        with self._lock:
            return self._callbacks.get(key)

    def set_discovery_callback(self, callback: Optional[DiscoveryCallback]) -> None:
        with self._lock:
            self._discovery_callback = callback

    def discovery_callback(self) -> Optional[DiscoveryCallback]:
        with self._lock:
            return self._discovery_callback

    def clear(self) -> None:
        with self._lock:
            self._callbacks.clear()
            self._discovery_callback = None

    def __len__(self) -> int:
        with self._lock:
            return len(self._callbacks)

    def __contains__(self, mac: object) -> bool:
        if not isinstance(mac, str):
            return False
        key = normalize_mac(mac)
        with self._lock:
            return key in self._callbacks
