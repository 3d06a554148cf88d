import os
import unittest
from unittest.mock import patch

from pydantic import ValidationError

from dokasah.config import Settings


class SettingsTests(unittest.TestCase):
    def test_jwt_secret_is_required(self):
        with patch.dict(os.environ, {}, clear=True):
            with self.assertRaises(ValidationError):
                Settings(_env_file=None)

    def test_short_jwt_secret_rejected(self):
        with patch.dict(os.environ, {"JWT_SECRET": "short"}, clear=True):
            with self.assertRaises(ValidationError):
                Settings(_env_file=None)

    def test_reads_environment_variables(self):
        env = {
            "JWT_SECRET": "from-the-environment",
            "DOMAIN": "forms.example.com",
            "TOKEN_TTL_SECONDS": "60",
            "DOKASAH_USE_IN_MEMORY_BACKENDS": "true",
        }
        with patch.dict(os.environ, env, clear=True):
            settings = Settings(_env_file=None)
        self.assertEqual(settings.jwt_secret, "from-the-environment")
        self.assertEqual(settings.domain, "forms.example.com")
        self.assertEqual(settings.token_ttl_seconds, 60)
        self.assertTrue(settings.use_in_memory_backends)

    def test_in_memory_toggle_accepts_field_name(self):
        with patch.dict(os.environ, {}, clear=True):
            settings = Settings(
                _env_file=None, jwt_secret="test-secret", use_in_memory_backends=True
            )
        self.assertTrue(settings.use_in_memory_backends)
        self.assertEqual(settings.jwt_algorithm, "HS256")


if __name__ == "__main__":
    unittest.main()
