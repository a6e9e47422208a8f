# Copyright 2017 Red Hat, Inc.
# Copyright 2023-2024 Acme Gating, LLC
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

import threading
import time

from buildfleet.exceptions import ConfigurationError

_TIME_UNITS = {
    's': 1,
    'm': 60,
    'h': 60 * 60,
    'd': 24 * 60 * 60,
    'w': 7 * 24 * 60 * 60,
}


def time_to_seconds(s):
    """Convert a suffixed time value such as ``30s`` or ``2m``"""
    try:
        return int(s[:-1]) * _TIME_UNITS[s[-1]]
    except (ValueError, IndexError, KeyError):
        raise ConfigurationError("Unable to parse time value: %s" % s)


class RateLimiter:
    """Space out calls to a cloud API

    Node tasks run concurrently and all of them talk to the same
    compute endpoint; calls made through the limiter are serialized to
    at most ``rate_limit`` per second.  A rate of 0 disables the limit.

    Used directly as a context manager, or called with a log method
    and message to also log how long the call took:

    .. code:: python

        rate_limiter = RateLimiter('gce', 2.0)
        with rate_limiter(log.debug, "Requested instance start"):
            api_call()
    """

    def __init__(self, name, rate_limit):
        self.name = name
        self.delta = 1.0 / rate_limit if rate_limit else 0.0
        self.last_ts = None
        self.lock = threading.Lock()

    def __call__(self, logmethod, msg):
        return _TimedCall(self, logmethod, msg)

    def __enter__(self):
        self.wait()

    def __exit__(self, etype, value, tb):
        pass

    def wait(self):
        """Block until the next call may proceed; return the delay"""
        with self.lock:
            delay = 0.0
            if self.last_ts is not None:
                delay = max(0.0, self.last_ts + self.delta - time.monotonic())
            if delay:
                time.sleep(delay)
            self.last_ts = time.monotonic()
            return delay


class _TimedCall:
    def __init__(self, limiter, logmethod, msg):
        self.limiter = limiter
        self.logmethod = logmethod
        self.msg = msg

    def __enter__(self):
        self.delay = self.limiter.wait()
        self.start_time = time.monotonic()

    def __exit__(self, etype, value, tb):
        self.logmethod("%s in %.3fs after %.3fs delay", self.msg,
                       time.monotonic() - self.start_time, self.delay)
