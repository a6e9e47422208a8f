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

from buildfleet.model import (
    BuildNode,
    CommandResult,
    NodeRegistration,
    PowerState,
    boxes_needed,
)

from tests.base import BaseTestCase


class TestBoxesNeeded(BaseTestCase):
    def test_ceiling_division(self):
        self.assertEqual(3, boxes_needed(5, 2))
        self.assertEqual(2, boxes_needed(4, 2))
        self.assertEqual(1, boxes_needed(1, 2))
        self.assertEqual(7, boxes_needed(7, 1))
        self.assertEqual(1, boxes_needed(3, 8))

    def test_empty_queue(self):
        self.assertEqual(0, boxes_needed(0, 2))
        self.assertEqual(0, boxes_needed(0, 1))

    def test_invalid_workers(self):
        self.assertRaises(ValueError, boxes_needed, 4, 0)
        self.assertRaises(ValueError, boxes_needed, 4, -1)

    def test_matches_exhaustive_ceiling(self):
        for w in range(1, 6):
            for q in range(0, 30):
                expected = q // w + (1 if q % w else 0)
                self.assertEqual(expected, boxes_needed(q, w), (q, w))


class TestNodeRegistration(BaseTestCase):
    def test_from_dict(self):
        reg = NodeRegistration.fromDict({
            'idle': True,
            'temporarilyOffline': False,
            'offline': True,
            'monitorData': {
                'hudson.node_monitors.ArchitectureMonitor': 'Linux (amd64)',
            },
        })
        self.assertTrue(reg.idle)
        self.assertFalse(reg.temporarily_offline)
        self.assertTrue(reg.offline)
        self.assertTrue(reg.agent_connected)

    def test_null_monitor_means_disconnected(self):
        reg = NodeRegistration.fromDict({
            'offline': True,
            'monitorData': {
                'hudson.node_monitors.ArchitectureMonitor': None,
            },
        })
        self.assertFalse(reg.agent_connected)
        reg = NodeRegistration.fromDict({'offline': True})
        self.assertFalse(reg.agent_connected)

    def test_garbage_is_all_false(self):
        for data in (None, "<html>", [], 42,
                     {'idle': 'yes', 'monitorData': 'nope'}):
            reg = NodeRegistration.fromDict(data)
            self.assertEqual(NodeRegistration(), reg, data)
            self.assertFalse(reg.offline)
            self.assertFalse(reg.idle)
            self.assertFalse(reg.temporarily_offline)
            self.assertFalse(reg.agent_connected)


class TestBuildNode(BaseTestCase):
    def test_defaults(self):
        node = BuildNode('build1-api')
        self.assertEqual(PowerState.UNKNOWN, node.power_state)
        self.assertEqual(NodeRegistration(), node.registration)
        self.assertIn('build1-api', repr(node))


class TestCommandResult(BaseTestCase):
    def test_truthiness(self):
        ok = CommandResult('toggleOffline', 'build1-api', True)
        failed = CommandResult('launchAgent', 'build1-api', False,
                               error='503')
        self.assertTrue(ok)
        self.assertFalse(failed)
        self.assertIn('failed: 503', repr(failed))
