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


class PowerState:
    """The compute plane's view of an instance, normalized"""
    STOPPED = 'stopped'
    STARTING = 'starting'
    RUNNING = 'running'
    STOPPING = 'stopping'
    UNKNOWN = 'unknown'


class NodeRegistration:
    """A node's registration state as reported by the CI master

    Every field defaults to False; that is also the state used when
    the CI master can not be queried or returns garbage, which keeps
    the node out of both scale-up and scale-down selection.
    """

    def __init__(self, offline=False, temporarily_offline=False,
                 idle=False, agent_connected=False):
        self.offline = offline
        self.temporarily_offline = temporarily_offline
        self.idle = idle
        self.agent_connected = agent_connected

    @classmethod
    def fromDict(cls, data):
        if not isinstance(data, dict):
            return cls()
        monitor_data = data.get('monitorData')
        if not isinstance(monitor_data, dict):
            monitor_data = {}
        return cls(
            offline=data.get('offline') is True,
            temporarily_offline=data.get('temporarilyOffline') is True,
            idle=data.get('idle') is True,
            agent_connected=monitor_data.get(
                'hudson.node_monitors.ArchitectureMonitor') is not None,
        )

    def toDict(self):
        return dict(
            offline=self.offline,
            temporarily_offline=self.temporarily_offline,
            idle=self.idle,
            agent_connected=self.agent_connected,
        )

    def __eq__(self, other):
        if not isinstance(other, NodeRegistration):
            return NotImplemented
        return self.toDict() == other.toDict()

    def __repr__(self):
        flags = [k for k, v in self.toDict().items() if v]
        return '<NodeRegistration %s>' % (' '.join(flags) or 'none')


class BuildNode:
    """A build box as seen during a single poll cycle

    Never stored; rebuilt from live queries whenever it is needed.
    """

    def __init__(self, identifier, power_state=PowerState.UNKNOWN,
                 registration=None):
        self.identifier = identifier
        self.power_state = power_state
        if registration is None:
            registration = NodeRegistration()
        self.registration = registration

    def __repr__(self):
        return '<BuildNode %s %s %s>' % (
            self.identifier, self.power_state, self.registration)


class CommandResult:
    """The outcome of a best-effort command

    Commands sent to the CI master and the compute plane are not
    retried within a cycle; the caller inspects ``accepted`` to decide
    whether to advance and otherwise leaves it to the next cycle.
    """

    def __init__(self, command, node, accepted, error=None):
        self.command = command
        self.node = node
        self.accepted = accepted
        self.error = error

    def __bool__(self):
        return self.accepted

    def __repr__(self):
        if self.accepted:
            return '<CommandResult %s %s accepted>' % (
                self.command, self.node)
        return '<CommandResult %s %s failed: %s>' % (
            self.command, self.node, self.error)


def boxes_needed(queue_size, workers_per_box):
    """Return the number of build boxes needed to drain the queue"""
    if workers_per_box < 1:
        raise ValueError("workers_per_box must be at least 1")
    if queue_size <= 0:
        return 0
    return (queue_size + workers_per_box - 1) // workers_per_box
