# Copyright 2025 Acme Gating, LLC
#
# Licensed under the Apache License, Version 2.0 (the "License"); you may
# not use this file except in compliance with the License. You may obtain
# a copy of the License at
#
#      http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS, WITHOUT
# WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied. See the
# License for the specific language governing permissions and limitations
# under the License.

import configparser
import logging
import time

from buildfleet.driver.util import RateLimiter, time_to_seconds
from buildfleet.exceptions import ConfigurationError
from buildfleet.lib.config import get_default, get_duration, get_list
from buildfleet.lib.logutil import get_annotated_logger

from tests.base import BaseTestCase


class TestConfigHelpers(BaseTestCase):
    def setUp(self):
        super().setUp()
        self.config = configparser.ConfigParser()
        self.config.read_dict({'controller': {
            'poll_interval': '2.5',
            'agent_timeout': '2m',
            'workers_per_box': '3',
            'nodes': 'a, b\tc,,d',
        }})

    def test_get_default_is_typed(self):
        self.assertEqual(3, get_default(self.config, 'controller',
                                        'workers_per_box', 2))
        self.assertEqual('3', get_default(self.config, 'controller',
                                          'workers_per_box'))
        self.assertEqual(2, get_default(self.config, 'controller',
                                        'missing', 2))

    def test_get_duration(self):
        self.assertEqual(2.5, get_duration(self.config, 'controller',
                                           'poll_interval', 8))
        self.assertEqual(120, get_duration(self.config, 'controller',
                                           'agent_timeout', 10))
        self.assertEqual(8, get_duration(self.config, 'controller',
                                         'missing', 8))

    def test_get_list(self):
        self.assertEqual(['a', 'b', 'c', 'd'],
                         get_list(self.config, 'controller', 'nodes'))
        self.assertEqual([], get_list(self.config, 'controller', 'missing'))

    def test_time_to_seconds(self):
        self.assertEqual(30, time_to_seconds('30s'))
        self.assertEqual(120, time_to_seconds('2m'))
        self.assertEqual(3600, time_to_seconds('1h'))
        for value in ('2y', '', 's', 'tens'):
            self.assertRaises(ConfigurationError, time_to_seconds, value)

    def test_invalid_values(self):
        self.config.read_dict({'gce': {'rate': 'fast'}})
        e = self.assertRaises(ConfigurationError, get_default, self.config,
                              'controller', 'nodes', 2)
        self.assertIn('"nodes" in the [controller] section', str(e))
        self.assertRaises(ConfigurationError, get_default, self.config,
                          'controller', 'nodes', False)
        self.assertRaises(ConfigurationError, get_default, self.config,
                          'gce', 'rate', 2.0)
        e = self.assertRaises(ConfigurationError, get_duration,
                              self.config, 'controller', 'nodes', 8)
        self.assertIn('Unable to parse time value', str(e))

    def test_get_default_float(self):
        self.assertEqual(2.5, get_default(self.config, 'controller',
                                          'poll_interval', 1.0))


class TestRateLimiter(BaseTestCase):
    def test_rate_limit(self):
        limiter = RateLimiter('test', 20)
        start = time.monotonic()
        for _ in range(3):
            with limiter:
                pass
        # The first call is free, then one every 1/20s
        self.assertGreaterEqual(time.monotonic() - start, 0.09)

    def test_unlimited(self):
        limiter = RateLimiter('test', 0)
        self.assertEqual(0.0, limiter.wait())
        self.assertEqual(0.0, limiter.wait())

    def test_wait_reports_delay(self):
        limiter = RateLimiter('test', 10)
        self.assertEqual(0.0, limiter.wait())
        self.assertGreater(limiter.wait(), 0.0)

    def test_rate_limit_logs(self):
        limiter = RateLimiter('test', 0)
        log = self.captureLog('buildfleet.test.limiter')
        logger = logging.getLogger('buildfleet.test.limiter')
        with limiter(logger.debug, "Requested instance start"):
            pass
        self.assertLogged(log, 'Requested instance start in ')


class TestAnnotatedLogger(BaseTestCase):
    def test_prefixes(self):
        log = self.captureLog('buildfleet.test.annotated')
        logger = logging.getLogger('buildfleet.test.annotated')
        cycle_log = get_annotated_logger(logger, cycle=7)
        node_log = get_annotated_logger(cycle_log, node='build1-api')
        node_log.info("Build box is online")
        cycle_log.info("Iteration finished")
        self.assertLogged(log,
                          '[cycle: 7] [node: build1-api] Build box is online')
        self.assertLogged(log, '[cycle: 7] Iteration finished')
