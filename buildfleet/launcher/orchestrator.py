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

import logging
import time

from buildfleet.exceptions import InstanceStuckError
from buildfleet.lib.logutil import get_annotated_logger
from buildfleet.model import BuildNode, PowerState

# Seconds to let the OS and agent runtime boot after RUNNING
SETTLE_DELAY = 20


class NodeOrchestrator:
    """Per-node transitions between the compute plane and the CI master

    A node moves through two independent sources of truth: its power
    state on the compute plane and its registration on the CI master.
    Both are re-read at every decision point.  The maintenance flag
    (temporarily offline) is set before a node is touched and cleared
    only once it is running with a connected agent, so the CI master
    never dispatches to a node mid-transition.

    Failures never raise; they are logged and the transition stops
    where it is, leaving the node in maintenance mode for the next
    poll cycle to reconsider.
    """

    log = logging.getLogger("buildfleet.NodeOrchestrator")

    def __init__(self, info_client, command_client, endpoint, waiter,
                 agent_launcher, settle_delay=SETTLE_DELAY, metrics=None):
        self.info = info_client
        self.commands = command_client
        self.endpoint = endpoint
        self.waiter = waiter
        self.agent_launcher = agent_launcher
        self.settle_delay = settle_delay
        self.metrics = metrics

    def _commandFailed(self, result):
        if self.metrics:
            self.metrics.command_failures.labels(result.command).inc()

    def describe(self, node):
        """Return a fresh :py:class:`~buildfleet.model.BuildNode` snapshot"""
        return BuildNode(node, self.endpoint.getPowerState(node),
                         self.info.getNodeInfo(node))

    def bringOnline(self, node):
        """Start an offline node and register it with the CI master

        :returns: True if the node ended up running, connected and out
            of maintenance mode.
        """
        log = get_annotated_logger(self.log, node=node)
        log.info("Build box is offline, trying to toggle it online")
        if not self._bringOnline(node, log):
            log.warning("Build box left as %s", self.describe(node))
            return False
        log.info("Build box is online")
        if self.metrics:
            self.metrics.nodes_started.inc()
        return True

    def _bringOnline(self, node, log):
        if not self.info.isTemporarilyOffline(node):
            result = self.commands.toggleOffline(node, "offline")
            if not result:
                self._commandFailed(result)
                return False

        if not self.endpoint.isRunning(node):
            result = self.endpoint.start(node)
            if not result:
                self._commandFailed(result)
                log.error("Start failed; leaving build box in "
                          "maintenance mode")
                return False
            try:
                self.waiter.waitFor(node, PowerState.RUNNING)
            except InstanceStuckError as e:
                log.error("%s; leaving build box in maintenance mode", e)
                return False
            log.debug("Waiting %ss for the build box to boot",
                      self.settle_delay)
            time.sleep(self.settle_delay)

        if not self.info.isAgentConnected(node):
            if not self.agent_launcher.launch(node):
                if self.metrics:
                    self.metrics.agent_timeouts.inc()
                log.warning("Agent is not connected; leaving build box in "
                            "maintenance mode")
                return False

        if self.info.isTemporarilyOffline(node):
            result = self.commands.toggleOffline(node, "online")
            if not result:
                self._commandFailed(result)
                return False
        return True

    def takeOffline(self, node):
        """Drain an idle node and power it off

        Busy nodes are left alone.  There is no undo: a node which
        picks up work after being put into maintenance mode stays
        there, is reported offline, and is brought back online by a
        later scale-up.

        :returns: True if the instance was stopped.
        """
        log = get_annotated_logger(self.log, node=node)
        if not self.info.isIdle(node):
            return False

        if not self.info.isTemporarilyOffline(node):
            log.info("Build box is not offline, trying to toggle it offline")
            result = self.commands.toggleOffline(node, "offline")
            if not result:
                self._commandFailed(result)
                return False
            # A job may have been dispatched between the idle check
            # and the toggle.
            if not self.info.isIdle(node):
                log.info("Build box picked up work; not stopping it")
                return False

        if not self.endpoint.isRunning(node):
            return False

        log.info("Build box is running... Stopping")
        result = self.endpoint.stop(node)
        if not result:
            self._commandFailed(result)
            return False
        try:
            self.waiter.waitFor(node, PowerState.STOPPED)
        except InstanceStuckError as e:
            log.error("%s", e)
            return False
        if self.metrics:
            self.metrics.nodes_stopped.inc()
        return True
