# SPDX-License-Identifier: Apache-2.0

import logging
import os
import tempfile
import unittest
from shutil import rmtree

from fabric_events.util.log import configure_logging


class ConfigureLoggingTest(unittest.TestCase):

    def setUp(self):
        self.base_path = tempfile.mkdtemp()
        self.logger_name = 'fabric_events.test_log'

    def tearDown(self):
        logger = logging.getLogger(self.logger_name)
        for handler in list(logger.handlers):
            handler.close()
            logger.removeHandler(handler)
        rmtree(self.base_path)

    def test_file_and_console(self):
        path = os.path.join(self.base_path, 'debug.log')
        logger = configure_logging(
            '{{"debug": "{}", "error": "console"}}'.format(path),
            self.logger_name)

        self.assertEqual(logger.level, logging.DEBUG)
        self.assertEqual(len(logger.handlers), 2)
        logger.debug('block %d', 3)
        for handler in logger.handlers:
            handler.flush()
        with open(path) as f:
            self.assertIn('block 3', f.read())

    def test_unset(self):
        logger = configure_logging({}, self.logger_name)
        self.assertEqual(logger.handlers, [])

    def test_invalid(self):
        with self.assertRaises(ValueError):
            configure_logging('debug', self.logger_name)
        with self.assertRaises(ValueError):
            configure_logging({'verbose': 'console'}, self.logger_name)


if __name__ == '__main__':
    unittest.main()
