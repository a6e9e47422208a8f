# Copyright 2021 Acme Gating, LLC
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

import socket

from requests.adapters import HTTPAdapter
from urllib3.connection import HTTPConnection

# Unanswered keepalives before an idle connection is dropped
KEEPALIVE_COUNT = 2


def keepalive_socket_options(interval):
    """Socket options which check an idle connection every interval

    Options the platform lacks (TCP_KEEPIDLE is Linux only) are left
    out.
    """
    options = [(socket.SOL_SOCKET, socket.SO_KEEPALIVE, 1)]
    for name, value in (('TCP_KEEPIDLE', interval),
                        ('TCP_KEEPINTVL', interval),
                        ('TCP_KEEPCNT', KEEPALIVE_COUNT)):
        opt = getattr(socket, name, None)
        if opt is not None:
            options.append((socket.IPPROTO_TCP, opt, value))
    return options


class KeepaliveHTTPAdapter(HTTPAdapter):
    """Transport for the CI master session

    The controller polls the same host every few seconds; keepalives
    let a half-open connection be noticed instead of hanging a cycle.
    A keepalive of 0 leaves the socket options alone.
    """

    def __init__(self, keepalive=0, **kw):
        self.keepalive = int(keepalive)
        super().__init__(**kw)

    def init_poolmanager(self, *args, **kw):
        if self.keepalive:
            kw['socket_options'] = (
                HTTPConnection.default_socket_options +
                keepalive_socket_options(self.keepalive))
        return super().init_poolmanager(*args, **kw)
