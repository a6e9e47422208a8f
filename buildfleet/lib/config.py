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


import os
import re

from buildfleet.driver.util import time_to_seconds
from buildfleet.exceptions import ConfigurationError


def get_default(config, section, option, default=None, expand_user=False):
    """Return a config option, typed like its default

    A value which can not be converted to the default's type is a
    :py:class:`~buildfleet.exceptions.ConfigurationError`.
    """
    if config.has_option(section, option):
        try:
            if isinstance(default, bool):
                value = config.getboolean(section, option)
            elif isinstance(default, int):
                value = config.getint(section, option)
            elif isinstance(default, float):
                value = config.getfloat(section, option)
            else:
                value = config.get(section, option)
        except ValueError as e:
            raise ConfigurationError(
                'Invalid value for "%s" in the [%s] section: %s' % (
                    option, section, e))
    else:
        value = default
    if expand_user and value:
        return os.path.expanduser(value)
    return value


def get_duration(config, section, option, default):
    """Return a duration in seconds.

    The option may be a plain number of seconds or a suffixed value
    such as ``30s`` or ``2m``.
    """
    value = get_default(config, section, option, None)
    if value is None:
        return default
    value = value.strip()
    try:
        return float(value)
    except ValueError:
        pass
    try:
        return time_to_seconds(value)
    except ConfigurationError as e:
        raise ConfigurationError(
            'Invalid value for "%s" in the [%s] section: %s' % (
                option, section, e))


def get_list(config, section, option, default=None):
    """Return a list from a comma or whitespace separated option"""
    value = get_default(config, section, option, None)
    if value is None:
        return list(default or [])
    return [x for x in re.split(r'[\s,]+', value) if x]
