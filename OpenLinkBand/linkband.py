"""Utilities for interacting with the LinkBand headband."""

from typing import Callable, ClassVar, Dict, Iterable, Optional

from .sensors import SensorType


class LinkBand:
    """Constants and helpers shared across LinkBand interactions."""

    DEVICE_NAME_PREFIX: ClassVar[str] = "LXB-"

    EEG_SERVICE_UUID: ClassVar[str] = "df7b5d95-3afe-00a1-084c-b50895ef4f95"
    EEG_NOTIFY_UUID: ClassVar[str] = "00ab4d15-66b4-0d8a-824f-8d6f8966c6e5"
    EEG_WRITE_UUID: ClassVar[str] = "0065cacb-9e52-21bf-a849-99a80d83830e"

    PPG_SERVICE_UUID: ClassVar[str] = "1cc50ec0-6967-9d84-a243-c2267f924d1f"
    PPG_UUID: ClassVar[str] = "6c739642-23ba-818b-2045-bfe8970263f6"

    ACCEL_SERVICE_UUID: ClassVar[str] = "75c276c3-8f97-20bc-a143-b354244886d4"
    ACCEL_UUID: ClassVar[str] = "d3d46a35-4394-e9aa-5a43-e7921120aaed"

    BATTERY_SERVICE_UUID: ClassVar[str] = "0000180f-0000-1000-8000-00805f9b34fb"
    BATTERY_UUID: ClassVar[str] = "00002a19-0000-1000-8000-00805f9b34fb"

    SENSOR_CHARACTERISTICS: ClassVar[Dict[str, SensorType]] = {
        EEG_NOTIFY_UUID: SensorType.EEG,
        PPG_UUID: SensorType.PPG,
        ACCEL_UUID: SensorType.ACCELEROMETER,
        BATTERY_UUID: SensorType.BATTERY,
    }

    @staticmethod
    def is_linkband(name: Optional[str]) -> bool:
        return isinstance(name, str) and name.startswith(LinkBand.DEVICE_NAME_PREFIX)

    @staticmethod
    def characteristic_for(sensor_type: SensorType) -> str:
        for uuid, kind in LinkBand.SENSOR_CHARACTERISTICS.items():
            if kind is sensor_type:
                return uuid
        raise ValueError(f"No characteristic for {sensor_type!r}")

    @staticmethod
    async def subscribe(
        client,
        callbacks: Dict[str, Callable],
        verbose: bool = False,
    ) -> list:
        """
        Subscribe to notifications on each characteristic in ``callbacks``.

        Subscription failures are reported (when verbose) and skipped, so a
        headband with a missing sensor still streams the others.

        Returns the list of UUIDs that were subscribed.
        """
        subscribed = []
        for uuid, callback in callbacks.items():
            try:
                await client.start_notify(uuid, callback)
                subscribed.append(uuid)
                if verbose:
                    print(f"Subscribed to notifications on {uuid}")
            except Exception as e:
                if verbose:
                    print(f"Warning: could not subscribe to {uuid}: {e}")
        return subscribed

    @staticmethod
    async def unsubscribe(client, uuids: Iterable[str]) -> None:
        """Stop notifications, ignoring characteristics that already went away."""
        for uuid in uuids:
            try:
                await client.stop_notify(uuid)
            except Exception:
                pass
