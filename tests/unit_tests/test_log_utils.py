"""
Unit tests for logging utilities.
"""

import logging
import os
import tempfile
import unittest
from unittest.mock import patch

from log_utils import NOISY_LOGGERS, setup_logging


class TestLogUtils(unittest.TestCase):
    """Test logging utilities."""

    def test_setup_logging_default(self):
        """Test default logging setup."""
        logger = setup_logging(log_file=None)
        self.assertIsInstance(logger, logging.Logger)

    def test_setup_logging_verbose(self):
        """Test verbose logging setup."""
        logger = setup_logging(verbose=True, log_file=None)
        self.assertIsInstance(logger, logging.Logger)
        for name in NOISY_LOGGERS:
            self.assertEqual(logging.getLogger(name).level, logging.INFO)

    def test_library_loggers_quieted(self):
        """Test HTTP and auth loggers are raised to WARNING by default."""
        setup_logging(log_file=None)
        for name in NOISY_LOGGERS:
            self.assertEqual(logging.getLogger(name).level, logging.WARNING)

    @patch("log_utils.logging.basicConfig")
    def test_stdout_only_without_log_file(self, mock_basic_config):
        """Test no file handler is installed when log_file is None."""
        setup_logging(log_file=None)

        handlers = mock_basic_config.call_args[1]["handlers"]
        self.assertEqual(len(handlers), 1)
        self.assertNotIsInstance(handlers[0], logging.FileHandler)
        self.assertEqual(mock_basic_config.call_args[1]["level"], logging.INFO)

    @patch("log_utils.logging.basicConfig")
    def test_file_handler_with_log_file(self, mock_basic_config):
        """Test a file handler is added for a log path."""
        with tempfile.TemporaryDirectory() as tmp:
            setup_logging(verbose=True, log_file=os.path.join(tmp, "upgrade.log"))
            handlers = mock_basic_config.call_args[1]["handlers"]
            for handler in handlers:
                handler.close()

        self.assertIsInstance(handlers[1], logging.FileHandler)
        self.assertEqual(mock_basic_config.call_args[1]["level"], logging.DEBUG)


if __name__ == "__main__":
    unittest.main()
