"""
Unit tests for settings loading
"""
import os
import unittest
from unittest import mock

from jornada.config import Settings, load_settings


class TestLoadSettings(unittest.TestCase):

    def load(self, **env):
        with mock.patch.dict(os.environ, env, clear=True):
            return load_settings(env_file=None)

    def test_defaults_without_environment(self):
        self.assertEqual(self.load(), Settings())

    def test_values_read_and_coerced(self):
        s = self.load(STALE_SESSION_HOURS="18", CLASSIFICATION_POLICY=" Daily_Cap ", LOG_LEVEL="debug",
                      LOCAL_TIMEZONE="UTC")
        self.assertEqual(s.stale_session_hours, 18)
        self.assertEqual(s.classification_policy, "daily_cap")
        self.assertEqual(s.log_level, "DEBUG")
        self.assertEqual(s.local_timezone, "UTC")

    def test_blank_or_malformed_numbers_keep_default(self):
        with self.assertLogs("jornada.config", level="WARNING"):
            s = self.load(AGGREGATE_WRITE_RETRIES="three", DISCONNECT_HOURS="  ")
        self.assertEqual(s.aggregate_write_retries, 3)
        self.assertEqual(s.disconnect_hours, 12)

    def test_dotenv_does_not_override_environment(self):
        with mock.patch("jornada.config.load_dotenv") as load_dotenv:
            with mock.patch.dict(os.environ, {}, clear=True):
                load_settings()
        self.assertFalse(load_dotenv.call_args.kwargs["override"])


if __name__ == "__main__":
    unittest.main()
