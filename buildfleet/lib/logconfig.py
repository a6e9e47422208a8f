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
import copy
import logging.config
import os

import yaml

_DEFAULT_SERVER_LOGGING_CONFIG = {
    'version': 1,
    'formatters': {
        'simple': {
            '()': 'buildfleet.lib.logutil.MultiLineFormatter',
            'format': '%(asctime)s %(levelname)s %(name)s: %(message)s'
        },
    },
    'handlers': {
        'console': {
            # Used for printing to stdout
            'class': 'logging.StreamHandler',
            'stream': 'ext://sys.stdout',
            'level': 'INFO',
            'formatter': 'simple',
        },
    },
    'loggers': {
        'buildfleet': {
            'handlers': ['console'],
            'level': 'INFO',
            'propagate': False,
        },
        'urllib3': {
            'handlers': ['console'],
            'level': 'WARN',
            'propagate': False,
        },
        'google': {
            'handlers': ['console'],
            'level': 'WARN',
            'propagate': False,
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARN',
    },
}

_DEFAULT_SERVER_FILE_HANDLERS = {
    'normal': {
        # Used for writing normal log files
        'class': 'logging.handlers.WatchedFileHandler',
        # This will get set to something real by ServerLoggingConfig.server
        'filename': '/var/log/buildfleet/{server}.log',
        'level': 'INFO',
        'formatter': 'simple',
    },
    'debug': {
        'class': 'logging.handlers.WatchedFileHandler',
        'filename': '/var/log/buildfleet/{server}-debug.log',
        'level': 'DEBUG',
        'formatter': 'simple',
    },
}


def load_config(filename):
    if not os.path.exists(filename):
        raise ValueError("Unable to read logging config file at %s" %
                         filename)

    if os.path.splitext(filename)[1] in ('.yml', '.yaml', '.json'):
        return FileLoggingConfig(filename)
    return IniFileLoggingConfig(filename)


class LoggingConfig(object, metaclass=abc.ABCMeta):

    @abc.abstractmethod
    def apply(self):
        """Apply the config information to the current logging config."""


class IniFileLoggingConfig(LoggingConfig):

    def __init__(self, filename):
        self._filename = filename

    def apply(self):
        logging.config.fileConfig(self._filename)


class DictLoggingConfig(LoggingConfig):

    def __init__(self, config):
        self._config = config

    def apply(self):
        logging.config.dictConfig(self._config)


class ServerLoggingConfig(DictLoggingConfig):

    def __init__(self, server=None):
        super(ServerLoggingConfig, self).__init__(
            config=copy.deepcopy(_DEFAULT_SERVER_LOGGING_CONFIG))
        if server:
            self.server = server

    @property
    def server(self):
        return self._server

    @server.setter
    def server(self, server):
        self._server = server
        # Add the normal file handler. It's not included in the default
        # config above because we're templating out the filename. Also, we
        # only want to add the handler if we're actually going to use it.
        for name, handler in _DEFAULT_SERVER_FILE_HANDLERS.items():
            server_handler = handler.copy()
            server_handler['filename'] = server_handler['filename'].format(
                server=server)
            self._config['handlers'][name] = server_handler
        # Change everything configured to write to stdout to write to
        # log files instead.
        for logger in self._config['loggers'].values():
            if logger['handlers'] == ['console']:
                logger['handlers'] = ['normal']
        self._config['root']['handlers'] = ['normal']

    def setDebug(self):
        # Change level from INFO to DEBUG
        for section in ('handlers', 'loggers'):
            for logger in self._config[section].values():
                if logger.get('level') == 'INFO':
                    logger['level'] = 'DEBUG'
        if 'normal' in self._config['handlers']:
            for logger in self._config['loggers'].values():
                if logger['handlers'] == ['normal']:
                    logger['handlers'] = ['debug']
            self._config['root']['handlers'] = ['debug']


class FileLoggingConfig(DictLoggingConfig):

    def __init__(self, filename):
        with open(filename, 'r') as f:
            config = yaml.safe_load(f)
        super(FileLoggingConfig, self).__init__(config=config)
