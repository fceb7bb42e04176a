import unittest

from OpenLinkBand.sensors import (
    AGGREGATE_FIELDS,
    DEFAULT_CONFIG,
    DEFAULT_RECORDING_SENSORS,
    PRESETS,
    SENSORS,
    SensorType,
)


class SensorTypeTests(unittest.TestCase):
    def test_display_names(self):
        self.assertEqual(
            [t.value for t in SensorType], ["EEG", "PPG", "Accelerometer", "Battery"]
        )

    def test_from_name(self):
        self.assertIs(SensorType.from_name("eeg"), SensorType.EEG)
        self.assertIs(SensorType.from_name(" PPG "), SensorType.PPG)
        self.assertIs(SensorType.from_name("accel"), SensorType.ACCELEROMETER)
        self.assertIs(SensorType.from_name("Accelerometer"), SensorType.ACCELEROMETER)
        self.assertIs(SensorType.from_name("battery"), SensorType.BATTERY)

    def test_from_name_unknown(self):
        with self.assertRaises(ValueError):
            SensorType.from_name("gyro")

    def test_default_selection_excludes_battery(self):
        self.assertEqual(
            DEFAULT_RECORDING_SENSORS,
            {SensorType.EEG, SensorType.PPG, SensorType.ACCELEROMETER},
        )


class SensorSpecTests(unittest.TestCase):
    def test_frame_layouts(self):
        eeg = SENSORS[SensorType.EEG]
        ppg = SENSORS[SensorType.PPG]

        self.assertEqual(eeg.frame_length, 4 + eeg.n_samples * eeg.sample_size)
        self.assertEqual(ppg.frame_length, 4 + ppg.n_samples * ppg.sample_size)
        self.assertEqual(SENSORS[SensorType.ACCELEROMETER].frame_length, 10)

    def test_csv_prefixes(self):
        self.assertEqual(
            [SENSORS[t].csv_prefix for t in SensorType],
            ["eeg_data", "ppg_data", "accel_data", "battery_data"],
        )

    def test_every_aggregate_field_belongs_to_one_sensor(self):
        owned = [f for t in SensorType for f in SENSORS[t].aggregate_fields]

        self.assertEqual(len(owned), len(set(owned)))
        self.assertEqual(["timestamp"] + owned, list(AGGREGATE_FIELDS))


class ConfigurationTests(unittest.TestCase):
    def test_ticks_to_seconds(self):
        self.assertAlmostEqual(DEFAULT_CONFIG.ticks_to_seconds(32768), 1.0)
        self.assertEqual(DEFAULT_CONFIG.ticks_to_seconds(0), 0.0)

    def test_sample_rates(self):
        self.assertEqual(DEFAULT_CONFIG.sample_rate(SensorType.EEG), 250.0)
        self.assertEqual(DEFAULT_CONFIG.sample_rate(SensorType.PPG), 50.0)
        self.assertEqual(DEFAULT_CONFIG.sample_rate(SensorType.ACCELEROMETER), 30.0)
        with self.assertRaises(ValueError):
            DEFAULT_CONFIG.sample_rate(SensorType.BATTERY)

    def test_presets(self):
        self.assertEqual(set(PRESETS), {"default", "high_performance", "low_power"})
        self.assertEqual(PRESETS["high_performance"].eeg_sample_rate, 500.0)
        self.assertEqual(PRESETS["low_power"].accelerometer_sample_rate, 10.0)
        # Scaling does not depend on the sampling preset
        self.assertEqual(PRESETS["low_power"].eeg_scale, DEFAULT_CONFIG.eeg_scale)


if __name__ == "__main__":
    unittest.main()
