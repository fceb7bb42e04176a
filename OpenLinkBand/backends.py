"""
BLE plumbing shared by discovery and streaming.

bleak is asyncio-only while the package's entry points are synchronous, so
every coroutine goes through ``run_sync``. Inside an already running event
loop (e.g. Jupyter) the coroutine runs on a private worker thread instead.
"""

import asyncio
import atexit
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Dict, List, Optional

import bleak

CONNECT_TIMEOUT = 15.0  # seconds

_executor: Optional[ThreadPoolExecutor] = None


def _shutdown_executor() -> None:
    if _executor is not None:
        _executor.shutdown(wait=False)


def run_sync(coro: Any):
    """Run ``coro`` to completion and return its result."""
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)

    global _executor
    if _executor is None:
        _executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="linkband-ble")
        atexit.register(_shutdown_executor)
    return _executor.submit(asyncio.run, coro).result()


class BleakBackend:
    """Device discovery and client creation on top of bleak."""

    def __init__(self, connect_timeout: float = CONNECT_TIMEOUT):
        self.connect_timeout = connect_timeout

    def scan(self, timeout: float = 10) -> List[Dict[str, Any]]:
        """
        Discover advertising devices, strongest signal first.

        Returns dicts with ``name``, ``address`` and ``rssi`` (dBm).
        """
        found = run_sync(bleak.BleakScanner.discover(timeout=timeout, return_adv=True))
        devices = [
            {
                "name": device.name or adv.local_name,
                "address": device.address,
                "rssi": adv.rssi,
            }
            for device, adv in found.values()
        ]
        devices.sort(key=lambda d: d["rssi"], reverse=True)
        return devices

    def client(self, address: str) -> bleak.BleakClient:
        """Unconnected client for ``address``; connect with ``async with``."""
        return bleak.BleakClient(address, timeout=self.connect_timeout)
