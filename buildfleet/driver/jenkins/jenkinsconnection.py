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
import urllib.parse

import requests

from buildfleet.exceptions import CIMasterError
from buildfleet.lib.http import KeepaliveHTTPAdapter
from buildfleet.lib.logutil import get_annotated_logger
from buildfleet.model import CommandResult, NodeRegistration

# HTTP timeout in seconds
TIMEOUT = 30


class JenkinsAPIClient():
    log = logging.getLogger("buildfleet.JenkinsAPIClient")

    def __init__(self, baseurl, authorization=None, node_suffix='',
                 keepalive=60, timeout=TIMEOUT):
        self.baseurl = baseurl.rstrip('/')
        self.node_suffix = node_suffix or ''
        self.keepalive = keepalive
        self.timeout = timeout
        self.headers = {}
        if authorization:
            self.headers['Authorization'] = authorization
        self.session = self._makeSession()

    def _makeSession(self):
        session = requests.Session()
        adapter = KeepaliveHTTPAdapter(keepalive=self.keepalive)
        session.mount(self.baseurl, adapter)
        return session

    def queueUrl(self):
        return '%s/queue/api/json' % self.baseurl

    def nodeUrl(self, node, path):
        name = urllib.parse.quote(node + self.node_suffix, safe='')
        return '%s/computer/%s/%s' % (self.baseurl, name, path)

    def get(self, url):
        self.log.debug("Getting resource %s ...", url)
        try:
            ret = self.session.get(url, headers=self.headers,
                                   timeout=self.timeout)
            self.log.debug("GET returned (code: %s): %s",
                           ret.status_code, ret.text)
            ret.raise_for_status()
            return ret.json()
        except (requests.RequestException, ValueError) as e:
            raise CIMasterError("Unable to GET %s: %s" % (url, e)) from e

    def post(self, url):
        self.log.debug("Posting on resource %s ...", url)
        try:
            # Jenkins answers form posts with a redirect to the node
            # page; there is no need to follow it.
            ret = self.session.post(url, headers=self.headers,
                                    timeout=self.timeout,
                                    allow_redirects=False)
            self.log.debug("POST returned (code: %s)", ret.status_code)
            ret.raise_for_status()
        except requests.RequestException as e:
            raise CIMasterError("Unable to POST %s: %s" % (url, e)) from e


class NodeInfoClient:
    """Read-only view of the CI master

    Every call performs a fresh request; failures are logged and
    mapped to safe defaults (an empty queue, an all-false node).
    """

    log = logging.getLogger("buildfleet.NodeInfoClient")

    def __init__(self, api):
        self.api = api

    def getQueueSize(self):
        try:
            data = self.api.get(self.api.queueUrl())
        except CIMasterError as e:
            self.log.warning("Error reading the CI queue: %s", e)
            return 0
        items = data.get('items') if isinstance(data, dict) else None
        if not isinstance(items, list):
            self.log.warning("Error deserialising CI queue: %r", data)
            return 0
        buildable = [i for i in items
                     if isinstance(i, dict) and i.get('buildable') is True]
        if buildable:
            self.log.debug("Buildable queue entries: %s", ', '.join(
                str((i.get('task') or {}).get('name')) for i in buildable))
        return len(buildable)

    def getNodeInfo(self, node):
        log = get_annotated_logger(self.log, node=node)
        try:
            data = self.api.get(self.api.nodeUrl(node, 'api/json'))
        except CIMasterError as e:
            log.warning("Error reading build box info: %s", e)
            return NodeRegistration()
        if not isinstance(data, dict):
            log.warning("Error deserialising build box info: %r", data)
        return NodeRegistration.fromDict(data)

    def isOffline(self, node):
        return self.getNodeInfo(node).offline

    def isTemporarilyOffline(self, node):
        return self.getNodeInfo(node).temporarily_offline

    def isIdle(self, node):
        return self.getNodeInfo(node).idle

    def isAgentConnected(self, node):
        return self.getNodeInfo(node).agent_connected


class NodeCommandClient:
    """Best-effort commands for a single CI node"""

    log = logging.getLogger("buildfleet.NodeCommandClient")

    def __init__(self, api):
        self.api = api

    def _post(self, command, node, path):
        try:
            self.api.post(self.api.nodeUrl(node, path))
        except CIMasterError as e:
            log = get_annotated_logger(self.log, node=node)
            log.error("Command %s failed: %s", command, e)
            return CommandResult(command, node, False, error=str(e))
        return CommandResult(command, node, True)

    def toggleOffline(self, node, message):
        """Flip the node's maintenance flag

        The CI master only offers a toggle, so callers must read the
        current flag first; ``message`` describes the intended new
        state for the log.
        """
        result = self._post('toggleOffline', node, 'toggleOffline')
        if result.accepted:
            log = get_annotated_logger(self.log, node=node)
            log.info("Toggled temporarily %s", message)
        return result

    def launchAgent(self, node):
        return self._post('launchAgent', node, 'launchSlaveAgent')
