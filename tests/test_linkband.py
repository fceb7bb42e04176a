import asyncio
import unittest
from unittest.mock import AsyncMock, MagicMock, patch

from OpenLinkBand.backends import BleakBackend
from OpenLinkBand.find import find_devices, resolve_address
from OpenLinkBand.linkband import LinkBand
from OpenLinkBand.sensors import SensorType


class LinkBandConstantsTests(unittest.TestCase):
    def test_is_linkband(self):
        self.assertTrue(LinkBand.is_linkband("LXB-0042"))
        self.assertFalse(LinkBand.is_linkband("Polar H10 1234"))
        self.assertFalse(LinkBand.is_linkband("lxb-0042"))
        self.assertFalse(LinkBand.is_linkband(None))

    def test_characteristic_for_each_sensor(self):
        uuids = {LinkBand.characteristic_for(t) for t in SensorType}

        self.assertEqual(len(uuids), len(SensorType))
        self.assertEqual(LinkBand.characteristic_for(SensorType.EEG), LinkBand.EEG_NOTIFY_UUID)
        self.assertEqual(LinkBand.characteristic_for(SensorType.BATTERY), LinkBand.BATTERY_UUID)

    def test_uuids_are_lowercase(self):
        for uuid in LinkBand.SENSOR_CHARACTERISTICS:
            self.assertEqual(uuid, uuid.lower())


class SubscribeTests(unittest.TestCase):
    def test_skips_failed_characteristics(self):
        client = MagicMock()

        async def start_notify(uuid, callback):
            if uuid == LinkBand.PPG_UUID:
                raise RuntimeError("characteristic not found")

        client.start_notify = AsyncMock(side_effect=start_notify)
        callbacks = {
            LinkBand.EEG_NOTIFY_UUID: lambda *_: None,
            LinkBand.PPG_UUID: lambda *_: None,
            LinkBand.ACCEL_UUID: lambda *_: None,
        }

        subscribed = asyncio.run(LinkBand.subscribe(client, callbacks))

        self.assertEqual(subscribed, [LinkBand.EEG_NOTIFY_UUID, LinkBand.ACCEL_UUID])
        self.assertEqual(client.start_notify.await_count, 3)

    def test_unsubscribe_ignores_errors(self):
        client = MagicMock()
        client.stop_notify = AsyncMock(side_effect=[RuntimeError("gone"), None])

        asyncio.run(LinkBand.unsubscribe(client, [LinkBand.EEG_NOTIFY_UUID, LinkBand.ACCEL_UUID]))

        self.assertEqual(client.stop_notify.await_count, 2)


class FindTests(unittest.TestCase):
    DEVICES = [
        {"name": "LXB-0001", "address": "AA:BB:CC:DD:EE:01"},
        {"name": "Polar H10 ABCD", "address": "AA:BB:CC:DD:EE:02"},
        {"name": None, "address": "AA:BB:CC:DD:EE:03"},
    ]

    @patch("OpenLinkBand.find.BleakBackend")
    def test_find_filters_by_name_prefix(self, backend_cls):
        backend_cls.return_value.scan.return_value = self.DEVICES

        bands = find_devices(timeout=1, verbose=False)

        self.assertEqual(bands, [self.DEVICES[0]])
        backend_cls.return_value.scan.assert_called_once_with(timeout=1)

    @patch("OpenLinkBand.find.BleakBackend")
    def test_resolve_single_device(self, backend_cls):
        backend_cls.return_value.scan.return_value = self.DEVICES

        self.assertEqual(resolve_address(verbose=False), "AA:BB:CC:DD:EE:01")

    @patch("OpenLinkBand.find.BleakBackend")
    def test_resolve_requires_exactly_one(self, backend_cls):
        backend_cls.return_value.scan.return_value = self.DEVICES[1:]
        with self.assertRaises(ValueError):
            resolve_address(verbose=False)

        backend_cls.return_value.scan.return_value = [
            {"name": "LXB-0001", "address": "1"},
            {"name": "LXB-0002", "address": "2"},
        ]
        with self.assertRaises(ValueError):
            resolve_address(verbose=False)


class BackendTests(unittest.TestCase):
    @patch("bleak.BleakScanner.discover", new_callable=AsyncMock)
    def test_scan_sorts_by_signal(self, discover):
        def found(name, address, rssi, local_name=None):
            device = MagicMock(address=address)
            device.name = name
            adv = MagicMock(rssi=rssi, local_name=local_name)
            return address, (device, adv)

        discover.return_value = dict(
            [
                found("LXB-0001", "A", -80),
                found(None, "B", -40, local_name="LXB-0002"),
            ]
        )

        devices = BleakBackend().scan(timeout=2)

        discover.assert_awaited_once_with(timeout=2, return_adv=True)
        self.assertEqual(
            devices,
            [
                {"name": "LXB-0002", "address": "B", "rssi": -40},
                {"name": "LXB-0001", "address": "A", "rssi": -80},
            ],
        )

    @patch("bleak.BleakClient")
    def test_client_uses_connect_timeout(self, client_cls):
        BleakBackend(connect_timeout=5.0).client("AA:BB")

        client_cls.assert_called_once_with("AA:BB", timeout=5.0)


if __name__ == "__main__":
    unittest.main()
