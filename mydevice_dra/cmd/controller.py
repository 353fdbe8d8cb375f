#!/usr/bin/env python3
"""
Mydevice DRA Controller - Entry Point

클러스터에 하나 실행됨 (Deployment)
Scheduling 시점에 claim을 노드/디바이스에 할당
"""

import argparse
import logging
import signal
import socket
import sys
import threading

from ..config import (
    CONTROLLER_ENDPOINT, CONTROLLER_WORKERS, HTTP_ENDPOINT, KUBECONFIG, LOG_LEVEL,
    NAMESPACE, LEADER_ELECTION_LEASE_DURATION, LEADER_ELECTION_RENEW_DEADLINE,
    LEADER_ELECTION_RETRY_PERIOD, get_config_summary,
)
from ..controller import ControllerServicer, ResourceDriver
from ..crd import AllocationStateClient, ParametersClient, new_custom_objects_api
from ..diagnostics import DiagnosticsServer
from ..rpc import listen, new_server

logger = logging.getLogger(__name__)

LEADER_ELECTION_LOCK_NAME = "mydevice-dra-controller"


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="mydevice-controller",
                                     description="Mydevice DRA controller")
    parser.add_argument("--kubeconfig", default=KUBECONFIG,
                        help="kubeconfig file, in-cluster config when empty")
    parser.add_argument("--namespace", default=NAMESPACE,
                        help="namespace of the MydeviceAllocationState objects")
    parser.add_argument("--workers", type=int, default=CONTROLLER_WORKERS,
                        help="concurrent RPC workers")
    parser.add_argument("--endpoint", default=CONTROLLER_ENDPOINT,
                        help="gRPC listen address")
    parser.add_argument("--http-endpoint", default=HTTP_ENDPOINT,
                        help="host:port for /healthz, /readyz, /status and /metrics, "
                             "disabled when empty")
    parser.add_argument("--leader-election", action="store_true",
                        help="run only while holding the leader lock")
    parser.add_argument("--leader-election-namespace", default=NAMESPACE)
    parser.add_argument("--log-level", default=LOG_LEVEL)
    return parser.parse_args(argv)


class Application:
    """Main application class"""

    def __init__(self, args: argparse.Namespace):
        self.args = args
        self.stopped = threading.Event()
        self.server = None
        self.leading = False

        api = new_custom_objects_api(args.kubeconfig or None)
        self.driver = ResourceDriver(
            AllocationStateClient(api, args.namespace),
            ParametersClient(api),
        )

        self.diagnostics = None
        if args.http_endpoint:
            self.diagnostics = DiagnosticsServer(
                self.driver.get_status, ready_fn=self.is_ready)

        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals"""
        logger.info(f"Received signal {signum}, shutting down...")
        self.stopped.set()

    def is_ready(self) -> bool:
        """Serving, and holding the leader lock when leader election is on"""
        if self.server is None:
            return False
        return self.leading or not self.args.leader_election

    def run(self):
        """Main run loop"""
        logger.info("=" * 50)
        logger.info("Mydevice DRA Controller Starting...")
        logger.info("=" * 50)

        for key, value in get_config_summary().items():
            logger.info(f"  {key}: {value}")

        if self.diagnostics:
            self.diagnostics.start(self.args.http_endpoint)

        if self.args.leader_election:
            self._run_leader_election()
        else:
            self._start_server()

        while not self.stopped.is_set():
            self._periodic_status()
            self.stopped.wait(30)

        self._shutdown()

    def _start_server(self):
        self.server = new_server(self.args.workers)
        ControllerServicer(self.driver).add_to_server(self.server)
        listen(self.server, self.args.endpoint)
        self.server.start()
        logger.info(f"Controller serving on {self.args.endpoint} "
                    f"with {self.args.workers} worker(s)")

    def _run_leader_election(self):
        from kubernetes.leaderelection import electionconfig, leaderelection
        from kubernetes.leaderelection.resourcelock.configmaplock import ConfigMapLock

        identity = socket.gethostname()
        lock = ConfigMapLock(LEADER_ELECTION_LOCK_NAME, self.args.leader_election_namespace, identity)

        def on_started_leading():
            logger.info(f"{identity} became leader")
            self.leading = True
            self._start_server()
            self.stopped.wait()

        def on_stopped_leading():
            logger.info(f"{identity} lost leadership")
            self.leading = False
            self.stopped.set()

        election = leaderelection.LeaderElection(electionconfig.Config(
            lock,
            LEADER_ELECTION_LEASE_DURATION,
            LEADER_ELECTION_RENEW_DEADLINE,
            LEADER_ELECTION_RETRY_PERIOD,
            on_started_leading,
            on_stopped_leading,
        ))
        threading.Thread(target=election.run, daemon=True).start()
        logger.info(f"Waiting for leadership as {identity}")

    def _periodic_status(self):
        """Periodic status logging"""
        status = self.driver.get_status()
        logger.debug(f"Controller status: {status['pending_claims']} pending claim(s), "
                     f"{status['known_nodes']} node(s) seen")

    def _shutdown(self):
        """Graceful shutdown"""
        logger.info("Shutting down...")
        if self.server:
            self.server.stop(grace=5)
        logger.info("Mydevice DRA Controller stopped.")


def main(argv=None):
    """Entry point"""
    args = parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    try:
        app = Application(args)
        app.run()
    except Exception as e:
        logger.exception(f"Fatal error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
