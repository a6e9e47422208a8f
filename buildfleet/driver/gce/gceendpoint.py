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

import google.auth
import google.auth.exceptions
from google.cloud import compute_v1
from google.oauth2 import service_account

from buildfleet.driver.util import RateLimiter
from buildfleet.exceptions import ComputeError, CredentialsError
from buildfleet.lib.logutil import get_annotated_logger
from buildfleet.model import CommandResult, PowerState
from buildfleet.provider import BaseComputeEndpoint

COMPUTE_SCOPE = 'https://www.googleapis.com/auth/compute'


def get_credentials(credentials_file=None):
    """Load compute credentials

    With a credentials file, the service account key in that file is
    used; otherwise the application default credentials are.
    """
    try:
        if credentials_file:
            return service_account.Credentials.from_service_account_file(
                credentials_file, scopes=[COMPUTE_SCOPE])
        credentials, _ = google.auth.default(scopes=[COMPUTE_SCOPE])
        return credentials
    except (OSError, ValueError,
            google.auth.exceptions.GoogleAuthError) as e:
        raise CredentialsError(
            "Error getting creds: %s" % (e,)) from e


class GceComputeEndpoint(BaseComputeEndpoint):
    """A GCE Endpoint corresponds to a single project and zone"""

    STATUS_MAP = {
        'PROVISIONING': PowerState.STARTING,
        'STAGING': PowerState.STARTING,
        'REPAIRING': PowerState.STARTING,
        'RUNNING': PowerState.RUNNING,
        'STOPPING': PowerState.STOPPING,
        'SUSPENDING': PowerState.STOPPING,
        'STOPPED': PowerState.STOPPED,
        'SUSPENDED': PowerState.STOPPED,
        'TERMINATED': PowerState.STOPPED,
    }

    def __init__(self, project, zone, credentials=None, rate=2,
                 client=None):
        name = f'{project}-{zone}'
        super().__init__(name)
        self.log = logging.getLogger(f"buildfleet.gce.{name}")
        self.project = project
        self.zone = zone
        self.rate_limiter = RateLimiter(name, rate)
        if client is None:
            client = compute_v1.InstancesClient(credentials=credentials)
        self._client = client

    def start(self, node):
        log = get_annotated_logger(self.log, node=node)
        try:
            with self.rate_limiter(log.debug, "Requested instance start"):
                self._client.start(
                    project=self.project, zone=self.zone, instance=node)
        except Exception as e:
            log.error("Unable to start instance: %s", e)
            return CommandResult('start', node, False, error=str(e))
        return CommandResult('start', node, True)

    def stop(self, node):
        log = get_annotated_logger(self.log, node=node)
        try:
            with self.rate_limiter(log.debug, "Requested instance stop"):
                self._client.stop(
                    project=self.project, zone=self.zone, instance=node)
        except Exception as e:
            log.error("Unable to stop instance: %s", e)
            return CommandResult('stop', node, False, error=str(e))
        return CommandResult('stop', node, True)

    def getInstanceStatus(self, node):
        try:
            with self.rate_limiter:
                instance = self._client.get(
                    project=self.project, zone=self.zone, instance=node)
        except Exception as e:
            raise ComputeError(
                "Unable to get instance %s: %s" % (node, e)) from e
        return instance.status
