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
import threading

from buildfleet.lib.logutil import get_annotated_logger

# Seconds between connection checks
RETRY_INTERVAL = 10
# Seconds to wait for the agent to connect
TIMEOUT = 120


class AgentLauncher:
    """Drive a node's CI agent into the connected state

    A retry thread checks the connection and asks the CI master to
    relaunch the agent until it connects.  The caller waits for either
    the connection or the timeout, whichever comes first; on timeout
    the retry thread is told to quit and the caller moves on.
    """

    log = logging.getLogger("buildfleet.AgentLauncher")

    def __init__(self, info_client, command_client,
                 retry_interval=RETRY_INTERVAL, timeout=TIMEOUT):
        self.info = info_client
        self.commands = command_client
        self.retry_interval = retry_interval
        self.timeout = timeout

    def launch(self, node):
        """Return True if the agent connected before the timeout"""
        log = get_annotated_logger(self.log, node=node)
        log.info("Relaunching agent, waiting for it to come online")
        connected = threading.Event()
        quit = threading.Event()
        thread = threading.Thread(
            target=self._retryLoop, args=(node, connected, quit, log),
            name=f"AgentLauncher-{node}")
        thread.daemon = True
        thread.start()
        if connected.wait(self.timeout):
            log.info("Agent is connected")
            return True
        quit.set()
        log.warning("Agent did not come online after %ss", self.timeout)
        return False

    def _retryLoop(self, node, connected, quit, log):
        while not quit.is_set():
            try:
                if self.info.isAgentConnected(node):
                    connected.set()
                    return
                if quit.is_set():
                    return
                self.commands.launchAgent(node)
            except Exception:
                log.exception("Error relaunching agent:")
            quit.wait(self.retry_interval)
