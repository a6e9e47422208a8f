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

import threading
import time

from buildfleet.launcher.agent import AgentLauncher

from tests.base import BaseTestCase, iterate_timeout
from tests.fakejenkins import FakeJenkins


class TestAgentLauncher(BaseTestCase):
    def setUp(self):
        super().setUp()
        self.jenkins = FakeJenkins()
        self.launcher = AgentLauncher(self.jenkins.info,
                                      self.jenkins.commands,
                                      retry_interval=0.05, timeout=2)

    def test_already_connected(self):
        self.jenkins.addNode('build1', agent_connected=True)
        self.assertTrue(self.launcher.launch('build1'))
        self.assertEqual([], self.jenkins.postsFor('build1'))

    def test_connects_after_relaunch(self):
        node = self.jenkins.addNode('build1', connects_on_boot=False,
                                    connect_after=2)
        self.assertTrue(self.launcher.launch('build1'))
        self.assertEqual(2, node.launch_attempts)
        self.assertEqual(['launchSlaveAgent', 'launchSlaveAgent'],
                         self.jenkins.postsFor('build1'))

    def test_failed_relaunch_is_retried(self):
        self.jenkins.addNode('build1', connects_on_boot=False,
                             connect_after=1)
        self.jenkins.fail_posts.add(('launchSlaveAgent', 'build1'))
        launcher = AgentLauncher(self.jenkins.info, self.jenkins.commands,
                                 retry_interval=0.05, timeout=0.3)
        self.assertFalse(launcher.launch('build1'))
        self.assertGreater(len(self.jenkins.postsFor('build1')), 1)

    def test_timeout(self):
        self.jenkins.addNode('build1', connects_on_boot=False)
        launcher = AgentLauncher(self.jenkins.info, self.jenkins.commands,
                                 retry_interval=0.05, timeout=0.3)
        log = self.captureLog('buildfleet.AgentLauncher')
        start = time.monotonic()
        self.assertFalse(launcher.launch('build1'))
        elapsed = time.monotonic() - start
        self.assertLess(elapsed, 0.3 + 0.05 + 1)
        self.assertLogged(log, 'Agent did not come online after 0.3s')

        # The retry thread quits; no further relaunches are requested
        # once it has noticed.
        time.sleep(0.2)
        posts = len(self.jenkins.postsFor('build1'))
        time.sleep(0.3)
        self.assertEqual(posts, len(self.jenkins.postsFor('build1')))

    def test_timeout_with_unresponsive_master(self):
        self.jenkins.addNode('build1', connects_on_boot=False)
        self.jenkins.responsive.clear()
        self.addCleanup(self.jenkins.responsive.set)
        launcher = AgentLauncher(self.jenkins.info, self.jenkins.commands,
                                 retry_interval=0.05, timeout=0.3)
        start = time.monotonic()
        self.assertFalse(launcher.launch('build1'))
        self.assertLess(time.monotonic() - start, 0.3 + 0.05 + 1)

        # When the master recovers the abandoned thread sees the quit
        # flag and never posts.
        self.jenkins.responsive.set()
        for _ in iterate_timeout(5, 'retry thread to exit'):
            if not [t for t in threading.enumerate()
                    if t.name == 'AgentLauncher-build1']:
                break
        self.assertEqual([], self.jenkins.postsFor('build1'))
