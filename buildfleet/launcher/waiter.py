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

# Seconds between status polls
POLL_INTERVAL = 3
# Seconds to wait for an instance to reach a power state
TIMEOUT = 600


class StatusWaiter:
    """Wait for an instance to reach a power state

    Polls the compute endpoint and logs only when the raw status
    changes.  Transient errors are logged and retried.  If the target
    is not reached within ``timeout`` seconds an
    :py:class:`~buildfleet.exceptions.InstanceStuckError` is raised; a
    timeout of None waits forever.
    """

    log = logging.getLogger("buildfleet.StatusWaiter")

    def __init__(self, endpoint, interval=POLL_INTERVAL, timeout=TIMEOUT):
        self.endpoint = endpoint
        self.interval = interval
        self.timeout = timeout

    def waitFor(self, node, target):
        log = get_annotated_logger(self.log, node=node)
        start = time.monotonic()
        previous_status = None
        while True:
            try:
                status = self.endpoint.getInstanceStatus(node)
            except Exception as e:
                log.warning("Failed to get instance data: %s", e)
            else:
                if status != previous_status:
                    log.info("  -> %s", status)
                    previous_status = status
                if self.endpoint.mapStatus(status) == target:
                    log.info("==> Instance is %s", target)
                    return status
            if (self.timeout is not None and
                    time.monotonic() - start >= self.timeout):
                raise InstanceStuckError(node, target, previous_status,
                                         self.timeout)
            time.sleep(self.interval)
