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

from buildfleet.exceptions import ComputeError, InstanceStuckError
from buildfleet.launcher.waiter import StatusWaiter
from buildfleet.model import PowerState

from tests.base import BaseTestCase
from tests.fake_gce import FakeComputeEndpoint


class TestStatusWaiter(BaseTestCase):
    def setUp(self):
        super().setUp()
        self.compute = FakeComputeEndpoint()
        self.waiter = StatusWaiter(self.compute, interval=0.01, timeout=5)

    def test_already_there(self):
        self.compute.addInstance('build1', 'RUNNING')
        self.assertEqual('RUNNING',
                         self.waiter.waitFor('build1', PowerState.RUNNING))

    def test_logs_only_on_change(self):
        instance = self.compute.addInstance('build1', 'TERMINATED')
        instance.script = (['TERMINATED'] * 3 + ['STAGING'] * 4 +
                           ['RUNNING'])
        log = self.captureLog('buildfleet.StatusWaiter')
        self.assertEqual('RUNNING',
                         self.waiter.waitFor('build1', PowerState.RUNNING))
        self.assertEqual(3, log.output.count('-> '))
        self.assertLogged(log, '-> STAGING')
        self.assertLogged(log, '==> Instance is running')

    def test_stop_reaches_terminated(self):
        self.compute.addInstance('build1', 'RUNNING')
        self.compute.stop('build1')
        self.assertEqual('TERMINATED',
                         self.waiter.waitFor('build1', PowerState.STOPPED))

    def test_transient_errors_are_retried(self):
        instance = self.compute.addInstance('build1', 'STAGING')
        instance.script = [ComputeError("503"), 'STAGING',
                           ComputeError("503"), 'RUNNING']
        log = self.captureLog('buildfleet.StatusWaiter')
        self.assertEqual('RUNNING',
                         self.waiter.waitFor('build1', PowerState.RUNNING))
        self.assertLogged(log, 'Failed to get instance data: 503')

    def test_stuck_instance(self):
        self.compute.addInstance('build1', 'STOPPING')
        waiter = StatusWaiter(self.compute, interval=0.01, timeout=0.1)
        e = self.assertRaises(InstanceStuckError, waiter.waitFor,
                              'build1', PowerState.RUNNING)
        self.assertEqual('build1', e.node)
        self.assertEqual(PowerState.RUNNING, e.target)
        self.assertEqual('STOPPING', e.last_status)
