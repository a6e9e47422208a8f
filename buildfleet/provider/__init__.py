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

import abc
import logging

from buildfleet.lib.logutil import get_annotated_logger
from buildfleet.model import PowerState


class BaseComputeEndpoint(metaclass=abc.ABCMeta):
    """Base class for compute endpoints.

    An endpoint is the part of a cloud which can see the build boxes
    in the pool (for GCE, a project and zone).  Instances are
    addressed by name, which is the same identifier the CI master
    uses for the node.

    Start and stop requests are asynchronous: a successful result
    only means the cloud accepted the request.  Use a
    :py:class:`~buildfleet.launcher.waiter.StatusWaiter` to wait for
    the resulting power state.
    """

    log = logging.getLogger("buildfleet.BaseComputeEndpoint")

    # Map of cloud status strings to PowerState values; anything not
    # listed is UNKNOWN.
    STATUS_MAP = {}

    def __init__(self, name):
        self.name = name

    @abc.abstractmethod
    def start(self, node):
        """Request that an instance be powered on.

        :returns: A :py:class:`~buildfleet.model.CommandResult`.
        """

    @abc.abstractmethod
    def stop(self, node):
        """Request that an instance be powered off.

        :returns: A :py:class:`~buildfleet.model.CommandResult`.
        """

    @abc.abstractmethod
    def getInstanceStatus(self, node):
        """Return the raw cloud status string for an instance.

        Raises :py:class:`~buildfleet.exceptions.ComputeError` if the
        status can not be determined.
        """

    def mapStatus(self, status):
        return self.STATUS_MAP.get(status, PowerState.UNKNOWN)

    def getPowerState(self, node):
        log = get_annotated_logger(self.log, node=node)
        try:
            status = self.getInstanceStatus(node)
        except Exception as e:
            log.warning("Failed to get instance data: %s", e)
            return PowerState.UNKNOWN
        return self.mapStatus(status)

    def isRunning(self, node):
        return self.getPowerState(node) == PowerState.RUNNING
