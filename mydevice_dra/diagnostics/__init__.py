"""
Diagnostics - HTTP endpoint for probes and status

- GET /healthz: process is alive
- GET /readyz: 200 once the driver is ready, 503 before
- GET /status: driver status and config summary
- GET /metrics: Prometheus exposition of the driver counters
"""

import logging
import threading
from typing import Callable

from flask import Flask, Response, jsonify
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest

from ..config import get_config_summary

logger = logging.getLogger(__name__)


class DiagnosticsServer:
    """Flask app serving probe and status endpoints"""

    def __init__(self, status_fn: Callable[[], dict], ready_fn: Callable[[], bool] = None):
        self.status_fn = status_fn
        self.ready_fn = ready_fn or (lambda: True)
        self.app = Flask(__name__)
        self._setup_routes()
        self._thread = None

    def _setup_routes(self):
        """Setup Flask routes"""
        self.app.add_url_rule('/healthz', 'healthz', self.healthz, methods=['GET'])
        self.app.add_url_rule('/readyz', 'readyz', self.readyz, methods=['GET'])
        self.app.add_url_rule('/status', 'status', self.status, methods=['GET'])
        self.app.add_url_rule('/metrics', 'metrics', self.metrics, methods=['GET'])

    def healthz(self):
        return jsonify({"status": "healthy"})

    def readyz(self):
        if self.ready_fn():
            return jsonify({"status": "ready"})
        return jsonify({"status": "not ready"}), 503

    def status(self):
        return jsonify({
            "status": "running",
            "config": get_config_summary(),
            "driver": self.status_fn(),
        })

    def metrics(self):
        return Response(generate_latest(), content_type=CONTENT_TYPE_LATEST)

    def start(self, endpoint: str):
        """Serve on "host:port" from a daemon thread"""
        host, _, port = endpoint.rpartition(':')
        host = host.strip('[]') or '0.0.0.0'
        logger.info(f"Starting diagnostics server on {host}:{port}")
        self._thread = threading.Thread(
            target=self.app.run,
            kwargs={"host": host, "port": int(port), "threaded": True},
            daemon=True,
        )
        self._thread.start()


__all__ = ["DiagnosticsServer"]
