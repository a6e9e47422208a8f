# Copyright 2019 BMW Group
# Copyright 2021 Acme Gating, LLC
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


def get_annotated_logger(logger, node=None, cycle=None):
    """Return a logger which prefixes messages with node and cycle ids

    Node tasks for the same cycle run concurrently, so their output
    interleaves; the prefixes keep it attributable.
    """
    if isinstance(logger, NodeLogAdapter):
        extra = dict(logger.extra)
        logger = logger.logger
    else:
        extra = {}

    if node is not None:
        extra['node'] = node

    if cycle is not None:
        extra['cycle'] = cycle

    return NodeLogAdapter(logger, extra)


class NodeLogAdapter(logging.LoggerAdapter):
    def process(self, msg, kwargs):
        msg, kwargs = super().process(msg, kwargs)
        extra = kwargs.get('extra', {})
        cycle = extra.get('cycle')
        node = extra.get('node')
        new_msg = []
        if cycle is not None:
            new_msg.append('[cycle: %s]' % cycle)
        if node is not None:
            new_msg.append('[node: %s]' % node)
        new_msg.append(msg)
        msg = ' '.join(new_msg)
        return msg, kwargs

    def addHandler(self, *args, **kw):
        return self.logger.addHandler(*args, **kw)


class MultiLineFormatter(logging.Formatter):
    def format(self, record):
        rec = super().format(record)
        ret = []
        # Save the existing message and re-use this record object to
        # format each line.
        saved_msg = record.message
        for i, line in enumerate(rec.split('\n')):
            if i:
                record.message = '  ' + line
                ret.append(self.formatMessage(record))
            else:
                ret.append(line)
        # Restore the message
        record.message = saved_msg
        return '\n'.join(ret)
