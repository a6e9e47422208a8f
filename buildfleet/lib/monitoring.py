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

import socket
import threading

import prometheus_client

from buildfleet.lib.config import get_default


def _get_best_family(address, port):
    """Automatically select address family depending on address"""
    # HTTPServer defaults to AF_INET, which will not start properly if
    # binding an ipv6 address is requested.
    infos = socket.getaddrinfo(address, port)
    family, _, _, _, sockaddr = next(iter(infos))
    return family, sockaddr[0]


class ControllerMetrics:
    def __init__(self, registry=prometheus_client.registry.REGISTRY):
        self.queue_size = prometheus_client.Gauge(
            'buildfleet_queue_size',
            'The number of buildable entries in the CI queue',
            registry=registry)
        self.boxes_needed = prometheus_client.Gauge(
            'buildfleet_boxes_needed',
            'The number of build boxes the last scale-up asked for',
            registry=registry)
        self.nodes_started = prometheus_client.Counter(
            'buildfleet_nodes_started',
            'Build boxes brought online',
            registry=registry)
        self.nodes_stopped = prometheus_client.Counter(
            'buildfleet_nodes_stopped',
            'Build boxes taken offline and powered off',
            registry=registry)
        self.agent_timeouts = prometheus_client.Counter(
            'buildfleet_agent_launch_timeouts',
            'Agent launches which did not connect in time',
            registry=registry)
        self.command_failures = prometheus_client.Counter(
            'buildfleet_command_failures',
            'Commands rejected by the CI master or compute API',
            ['command'],
            registry=registry)
        self.cycle_duration = prometheus_client.Histogram(
            'buildfleet_cycle_duration_seconds',
            'Time spent in a single poll cycle',
            registry=registry)


class MonitoringServer:
    def __init__(self, config, section, component):
        if not config.has_option(section, 'prometheus_port'):
            self.httpd = None
            return

        self.component = component
        port = int(config.get(section, 'prometheus_port'))
        addr = get_default(
            config, section, 'prometheus_addr', '0.0.0.0')

        self.prometheus_app = prometheus_client.make_wsgi_app(
            prometheus_client.registry.REGISTRY)

        class TmpServer(prometheus_client.exposition.ThreadingWSGIServer):
            """Copy of ThreadingWSGIServer to update address_family locally"""
        TmpServer.address_family, addr = _get_best_family(addr, port)

        self.httpd = prometheus_client.exposition.make_server(
            addr, port,
            self.handleRequest,
            TmpServer,
            handler_class=prometheus_client.exposition._SilentHandler)
        # The unit tests pass in 0 for the port
        self.port = self.httpd.socket.getsockname()[1]

    def start(self):
        if self.httpd is None:
            return
        self.thread = threading.Thread(target=self.httpd.serve_forever,
                                       name="MonitoringServer")
        self.thread.daemon = True
        self.thread.start()

    def stop(self):
        if self.httpd is None:
            return
        self.httpd.shutdown()

    def join(self):
        if self.httpd is None:
            return
        self.thread.join()
        self.httpd.socket.close()

    def handleRequest(self, environ, start_response):
        headers = []
        output = b''
        if environ['PATH_INFO'] == '/health/live':
            status = '200 OK'
        elif environ['PATH_INFO'] == '/health/ready':
            if self.component.state == self.component.RUNNING:
                status = '200 OK'
            else:
                status = '503 Service Unavailable'
        elif environ['PATH_INFO'] == '/health/status':
            status = '200 OK'
            headers = [('Content-Type', 'text/plain')]
            output = str(self.component.state).encode('utf8').upper()
        elif environ['PATH_INFO'] in ('/metrics', '/'):
            return self.prometheus_app(environ, start_response)
        else:
            status = '404 Not Found'
        start_response(status, headers)
        return [output]
