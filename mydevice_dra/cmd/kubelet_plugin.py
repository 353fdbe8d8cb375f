#!/usr/bin/env python3
"""
Mydevice DRA Kubelet Plugin - Entry Point

각 노드에서 DaemonSet으로 실행됨
구성요소:
1. Node Driver - 디바이스 탐지, MydeviceAllocationState 게시
2. gRPC 서버 - kubelet의 prepare/unprepare 요청 처리 (v1alpha1 Node)
3. Registrar - plugins_registry 소켓에서 kubelet 플러그인 등록 응답
"""

import argparse
import logging
import signal
import sys
import threading
from functools import partial

from ..config import (
    CDI_ROOT, DRIVER_NAME, FAKE_DEVICE_COUNT, HTTP_ENDPOINT, KUBECONFIG, LOG_LEVEL, NAMESPACE,
    NODE_NAME, PLUGIN_ENDPOINT, PLUGIN_WORKERS, REGISTRAR_ENDPOINT, SYSFS_DRM_DIR,
    get_config_summary,
)
from ..crd import AllocationStateClient, new_custom_objects_api
from ..diagnostics import DiagnosticsServer
from ..kubelet_plugin import NodeDriver, NodeServicer, RegistrationServicer
from ..kubelet_plugin.cdi import CDIRegistry
from ..kubelet_plugin.discovery import enumerate_all_possible_devices
from ..rpc import listen, new_server, socket_path

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="mydevice-kubelet-plugin",
                                     description="Mydevice DRA kubelet plugin")
    parser.add_argument("--kubeconfig", default=KUBECONFIG,
                        help="kubeconfig file, in-cluster config when empty")
    parser.add_argument("--namespace", default=NAMESPACE,
                        help="namespace of the MydeviceAllocationState objects")
    parser.add_argument("--node-name", default=NODE_NAME)
    parser.add_argument("--cdi-root", default=CDI_ROOT)
    parser.add_argument("--sysfs-drm-dir", default=SYSFS_DRM_DIR)
    parser.add_argument("--fake-devices", type=int, default=FAKE_DEVICE_COUNT,
                        help="devices to fake when no DRM device is found")
    parser.add_argument("--endpoint", default=PLUGIN_ENDPOINT,
                        help="gRPC listen address for kubelet")
    parser.add_argument("--registrar-endpoint", default=REGISTRAR_ENDPOINT,
                        help="plugin watcher socket kubelet registers the driver through, "
                             "disabled when empty")
    parser.add_argument("--workers", type=int, default=PLUGIN_WORKERS)
    parser.add_argument("--http-endpoint", default=HTTP_ENDPOINT,
                        help="host:port for /healthz, /readyz, /status and /metrics, "
                             "disabled when empty")
    parser.add_argument("--log-level", default=LOG_LEVEL)
    return parser.parse_args(argv)


class Application:
    """Main application class"""

    def __init__(self, args: argparse.Namespace):
        if not args.node_name:
            raise RuntimeError("node name not set (NODE_NAME or --node-name)")

        self.args = args
        self.stopped = threading.Event()
        self.server = None
        self.registrar = None
        self.registration = RegistrationServicer(DRIVER_NAME, socket_path(args.endpoint))

        api = new_custom_objects_api(args.kubeconfig or None)
        self.driver = NodeDriver(
            AllocationStateClient(api, args.namespace),
            args.node_name,
            registry=CDIRegistry([args.cdi_root]),
            discover=partial(enumerate_all_possible_devices,
                             args.sysfs_drm_dir, args.fake_devices),
        )

        self.diagnostics = None
        if args.http_endpoint:
            self.diagnostics = DiagnosticsServer(self.driver.get_status, self.driver.is_ready)

        signal.signal(signal.SIGTERM, self._signal_handler)
        signal.signal(signal.SIGINT, self._signal_handler)

    def _signal_handler(self, signum, frame):
        """Handle shutdown signals"""
        logger.info(f"Received signal {signum}, shutting down...")
        self.stopped.set()

    def run(self):
        """Main run loop"""
        logger.info("=" * 50)
        logger.info("Mydevice DRA Kubelet Plugin Starting...")
        logger.info("=" * 50)

        for key, value in get_config_summary().items():
            logger.info(f"  {key}: {value}")
        logger.info(f"Node: {self.args.node_name}")

        if self.diagnostics:
            self.diagnostics.start(self.args.http_endpoint)

        self.driver.start()

        self.server = new_server(self.args.workers)
        NodeServicer(self.driver).add_to_server(self.server)
        listen(self.server, self.args.endpoint)
        self.server.start()

        if self.args.registrar_endpoint:
            self._start_registrar()

        logger.info("=" * 50)
        logger.info("Mydevice DRA Kubelet Plugin is running!")
        logger.info("=" * 50)

        while not self.stopped.is_set():
            self._periodic_status()
            self.stopped.wait(30)

        self._shutdown()

    def _start_registrar(self):
        """Serve the Registration service where kubelet's plugin watcher looks"""
        self.registrar = new_server(1)
        self.registration.add_to_server(self.registrar)
        listen(self.registrar, self.args.registrar_endpoint)
        self.registrar.start()
        logger.info(f"Waiting for kubelet registration on {self.args.registrar_endpoint}")

    def _periodic_status(self):
        """Periodic status logging"""
        status = self.driver.get_status()
        logger.debug(f"Node status: {len(status.get('allocatable_devices', []))} device(s), "
                     f"{len(status.get('allocations', {}))} allocation(s)")

    def _shutdown(self):
        """Graceful shutdown"""
        logger.info("Shutting down...")
        if self.registrar:
            self.registrar.stop(grace=None)
        if self.server:
            self.server.stop(grace=5)
        logger.info("Mydevice DRA Kubelet Plugin stopped.")


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
