"""Tests for logger configuration."""

from __future__ import annotations

import logging
import unittest

from fenbank.utils.logger import get_logger, set_level


class LoggerTests(unittest.TestCase):
    def test_package_logger_has_single_stdout_handler(self) -> None:
        logger = get_logger()

        self.assertEqual(logger.name, "fenbank")
        self.assertEqual(len(logger.handlers), 1)
        self.assertFalse(logger.propagate)

        get_logger()
        self.assertEqual(len(logger.handlers), 1)

    def test_module_loggers_propagate_to_package_logger(self) -> None:
        logger = get_logger("fenbank.merge_worker")

        self.assertEqual(logger.handlers, [])
        self.assertTrue(logger.propagate)
        with self.assertLogs("fenbank", level="INFO") as captured:
            logger.info("merged %s chunks", 6)
        self.assertEqual(captured.records[0].getMessage(), "merged 6 chunks")

    def test_set_level(self) -> None:
        logger = get_logger()
        previous = logger.level
        try:
            set_level(logging.DEBUG)
            self.assertEqual(logger.level, logging.DEBUG)
        finally:
            logger.setLevel(previous)
