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
import signal
import sys

import buildfleet.cmd
from buildfleet.driver.gce.gceendpoint import (
    GceComputeEndpoint,
    get_credentials,
)
from buildfleet.driver.jenkins.jenkinsconnection import (
    JenkinsAPIClient,
    NodeCommandClient,
    NodeInfoClient,
)
from buildfleet.exceptions import ConfigurationError, CredentialsError
from buildfleet.launcher import agent, orchestrator, server, waiter
from buildfleet.launcher.agent import AgentLauncher
from buildfleet.launcher.orchestrator import NodeOrchestrator
from buildfleet.launcher.server import FleetController
from buildfleet.launcher.waiter import StatusWaiter
from buildfleet.lib.config import get_default, get_duration, get_list
from buildfleet.lib.monitoring import ControllerMetrics, MonitoringServer


def _required(config, section, option):
    value = get_default(config, section, option)
    if not value:
        raise ConfigurationError(
            'The "%s" option is required in the [%s] section' % (
                option, section))
    return value


class ControllerApp(buildfleet.cmd.BuildfleetDaemonApp):
    app_name = 'controller'
    app_description = 'Start and stop CI build boxes to follow the queue.'
    controller = None
    monitoring_server = None

    def createParser(self):
        parser = super().createParser()
        parser.add_argument('--workers-per-box', dest='workers_per_box',
                            type=int,
                            help='number of workers per build box')
        parser.add_argument('--use-local-creds', dest='use_local_creds',
                            action='store_true',
                            help='use the service account key file '
                            '(creds.json by default) as credentials for '
                            'the compute API')
        parser.add_argument('nodes', nargs='*',
                            help='build boxes in the pool; overrides the '
                            'configured nodes')
        return parser

    def exit_handler(self, signum, frame):
        if self.controller:
            self.controller.stop()

    def getCredentials(self):
        if getattr(self.args, 'use_local_creds', False):
            creds_file = get_default(self.config, 'gce', 'credentials_file',
                                     'creds.json', expand_user=True)
        else:
            creds_file = None
        return get_credentials(creds_file)

    def createEndpoint(self):
        return GceComputeEndpoint(
            _required(self.config, 'gce', 'project'),
            _required(self.config, 'gce', 'zone'),
            credentials=self.getCredentials(),
            rate=get_default(self.config, 'gce', 'rate', 2.0),
        )

    def createController(self, endpoint, metrics=None):
        config = self.config
        api = JenkinsAPIClient(
            _required(config, 'jenkins', 'url'),
            authorization=get_default(config, 'jenkins', 'authorization'),
            node_suffix=get_default(config, 'jenkins', 'node_suffix', ''),
            keepalive=get_default(config, 'jenkins', 'keepalive', 60),
            timeout=get_duration(config, 'jenkins', 'timeout', 30),
        )
        info_client = NodeInfoClient(api)
        command_client = NodeCommandClient(api)

        status_waiter = StatusWaiter(
            endpoint,
            interval=get_duration(config, 'controller',
                                  'status_poll_interval',
                                  waiter.POLL_INTERVAL),
            timeout=get_duration(config, 'controller', 'status_timeout',
                                 waiter.TIMEOUT),
        )
        agent_launcher = AgentLauncher(
            info_client, command_client,
            retry_interval=get_duration(config, 'controller',
                                        'agent_retry_interval',
                                        agent.RETRY_INTERVAL),
            timeout=get_duration(config, 'controller', 'agent_timeout',
                                 agent.TIMEOUT),
        )
        node_orchestrator = NodeOrchestrator(
            info_client, command_client, endpoint, status_waiter,
            agent_launcher,
            settle_delay=get_duration(config, 'controller', 'settle_delay',
                                      orchestrator.SETTLE_DELAY),
            metrics=metrics,
        )

        nodes = getattr(self.args, 'nodes', None) or get_list(
            config, 'controller', 'nodes')
        workers_per_box = getattr(self.args, 'workers_per_box', None)
        if workers_per_box is None:
            workers_per_box = get_default(config, 'controller',
                                          'workers_per_box', 2)
        return FleetController(
            info_client, node_orchestrator, nodes,
            workers_per_box=workers_per_box,
            poll_interval=get_duration(config, 'controller',
                                       'poll_interval',
                                       server.POLL_INTERVAL),
            metrics=metrics,
        )

    def run(self):
        self.setup_logging('controller', 'log_config')
        self.log = logging.getLogger('buildfleet.Controller')

        try:
            endpoint = self.createEndpoint()
            self.controller = self.createController(
                endpoint, ControllerMetrics())
        except (ConfigurationError, CredentialsError) as e:
            self.log.error("Unable to start controller: %s", e)
            sys.exit(1)

        self.monitoring_server = MonitoringServer(
            self.config, 'controller', self.controller)
        self.monitoring_server.start()
        self.controller.start()

        if self.args.nodaemon:
            signal.signal(signal.SIGTERM, self.exit_handler)

        while True:
            try:
                self.controller.join()
                break
            except KeyboardInterrupt:
                print("Ctrl + C: asking controller to exit nicely...\n")
                self.exit_handler(signal.SIGINT, None)
        self.monitoring_server.stop()
        self.monitoring_server.join()


def main():
    ControllerApp().main()
