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

from concurrent.futures import ThreadPoolExecutor
import concurrent.futures
import logging
import random
import threading
import time

from buildfleet.exceptions import ConfigurationError
from buildfleet.lib.logutil import get_annotated_logger
from buildfleet.model import boxes_needed

# Seconds to sleep between poll cycles
POLL_INTERVAL = 8


class FleetController:
    """Scale a fixed pool of build boxes with the CI queue

    Each poll cycle reads the number of buildable queue entries.  A
    non-empty queue brings offline boxes online, an empty one drains
    and stops idle boxes.  Per-node work within a cycle runs
    concurrently; cycles themselves never overlap.

    The scale-up count is optimistic: a box counts toward the target
    as soon as its bring-online task is submitted, not when it
    succeeds.  A box which fails to come up is not replaced until the
    next cycle re-reads the queue and the pool.
    """

    log = logging.getLogger("buildfleet.FleetController")

    INITIALIZING = 'initializing'
    RUNNING = 'running'
    STOPPED = 'stopped'

    def __init__(self, info_client, orchestrator, nodes, workers_per_box=2,
                 poll_interval=POLL_INTERVAL, metrics=None):
        nodes = tuple(nodes)
        if not nodes:
            raise ConfigurationError("No build boxes configured")
        if len(set(nodes)) != len(nodes):
            raise ConfigurationError(
                "Duplicate build boxes in pool: %s" % ', '.join(nodes))
        if workers_per_box < 1:
            raise ConfigurationError(
                "workers_per_box must be at least 1, not %s" %
                workers_per_box)
        self.info = info_client
        self.orchestrator = orchestrator
        self.nodes = nodes
        self.workers_per_box = workers_per_box
        self.poll_interval = poll_interval
        self.metrics = metrics
        self.state = self.INITIALIZING
        self.cycle = 0
        self.stop_event = threading.Event()
        # One worker per box so that every node task in a cycle runs
        # at the same time.
        self.node_executor = ThreadPoolExecutor(
            max_workers=len(self.nodes),
            thread_name_prefix="NodeWorker",
        )
        self.controller_thread = threading.Thread(
            target=self.run,
            name="FleetController",
        )

    def boxesNeeded(self, queue_size):
        return boxes_needed(queue_size, self.workers_per_box)

    def _shuffleNodes(self):
        # This is to allow unit test control of this process.
        nodes = list(self.nodes)
        random.shuffle(nodes)
        return nodes

    def _runNodeTask(self, func, node):
        try:
            return func(node)
        except Exception:
            log = get_annotated_logger(self.log, node=node)
            log.exception("Error processing build box:")
            return False

    def _submit(self, func, node):
        return self.node_executor.submit(self._runNodeTask, func, node)

    def _waitForTasks(self, futures):
        concurrent.futures.wait(futures)

    def scaleUp(self, queue_size):
        """Bring enough offline boxes online for the queue

        :returns: The list of nodes selected to be brought online.
        """
        log = get_annotated_logger(self.log, cycle=self.cycle)
        needed = self.boxesNeeded(queue_size)
        if self.metrics:
            self.metrics.boxes_needed.set(needed)
        log.info("Checking if any box is offline")
        selected = []
        futures = []
        for node in self._shuffleNodes():
            if needed <= 0:
                break
            if not self.info.isOffline(node):
                continue
            selected.append(node)
            futures.append(self._submit(self.orchestrator.bringOnline, node))
            needed -= 1
            log.info("%d more boxes needed", needed)
        if needed > 0:
            log.info("No more build boxes available to start")
        self._waitForTasks(futures)
        return selected

    def scaleDown(self):
        """Drain and stop every idle box in the pool"""
        log = get_annotated_logger(self.log, cycle=self.cycle)
        log.info("Checking if any box is enabled and idle")
        futures = [self._submit(self.orchestrator.takeOffline, node)
                   for node in self.nodes]
        self._waitForTasks(futures)

    def runCycle(self):
        self.cycle += 1
        log = get_annotated_logger(self.log, cycle=self.cycle)
        try:
            queue_size = self.info.getQueueSize()
        except Exception:
            log.exception("Error reading queue size:")
            queue_size = 0
        log.info("Queue size: %d", queue_size)
        if self.metrics:
            self.metrics.queue_size.set(queue_size)

        if queue_size > 0:
            self.scaleUp(queue_size)
        else:
            self.scaleDown()
        log.info("Iteration finished")

    def run(self):
        self.state = self.RUNNING
        self.log.debug("Controller running")
        while not self.stop_event.is_set():
            loop_start = time.monotonic()
            try:
                self.runCycle()
            except Exception:
                self.log.exception("Error in main thread:")
            if self.metrics:
                self.metrics.cycle_duration.observe(
                    time.monotonic() - loop_start)
            self.stop_event.wait(self.poll_interval)
        self.state = self.STOPPED

    def start(self):
        self.log.debug("Starting controller thread")
        self.controller_thread.start()

    def stop(self):
        # Only checked between cycles; node tasks in flight are allowed
        # to finish.
        self.log.debug("Stopping controller")
        self.stop_event.set()

    def join(self):
        self.log.debug("Joining controller")
        self.controller_thread.join()
        self.node_executor.shutdown()
        self.log.debug("Joined controller")
