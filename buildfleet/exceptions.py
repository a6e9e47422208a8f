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


class ConfigurationError(Exception):
    pass


class CredentialsError(Exception):
    """Compute credentials could not be loaded; fatal at startup."""
    pass


class CIMasterError(Exception):
    """The CI master could not be reached or returned an error."""
    pass


class ComputeError(Exception):
    """The compute API rejected or failed a request."""
    pass


class InstanceStuckError(Exception):
    def __init__(self, node, target, last_status, timeout):
        self.node = node
        self.target = target
        self.last_status = last_status
        self.timeout = timeout
        message = ("Instance %s did not reach %s within %ss "
                   "(last status: %s)" % (node, target, timeout,
                                          last_status))
        super(InstanceStuckError, self).__init__(message)
