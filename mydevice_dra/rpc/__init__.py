"""
RPC Module - gRPC plumbing shared by the controller and the kubelet plugin

The controller service is registered as generic handlers with JSON
request/response bodies. The kubelet-facing services use protobuf
messages (see descriptors.py and kubelet_plugin/*_pb2.py). Driver errors
are mapped onto gRPC status codes for both.
"""

import json
import logging
import os
from concurrent import futures
from typing import Callable, Dict

import grpc

from ..errors import (
    DriverError, NotReadyError, InsufficientResourcesError, NoSuitableNodeError,
    ConflictError, NotFoundError, InconsistentStateError, UnsupportedKindError,
    UnsupportedDeviceTypeError, InvalidParametersError, PendingRequestMissingError,
)

logger = logging.getLogger(__name__)

STATUS_CODES = [
    # subclasses before their bases
    (PendingRequestMissingError, grpc.StatusCode.FAILED_PRECONDITION),
    (NotReadyError, grpc.StatusCode.UNAVAILABLE),
    (InsufficientResourcesError, grpc.StatusCode.RESOURCE_EXHAUSTED),
    (NoSuitableNodeError, grpc.StatusCode.RESOURCE_EXHAUSTED),
    (ConflictError, grpc.StatusCode.ABORTED),
    (NotFoundError, grpc.StatusCode.NOT_FOUND),
    (InconsistentStateError, grpc.StatusCode.FAILED_PRECONDITION),
    (UnsupportedKindError, grpc.StatusCode.INVALID_ARGUMENT),
    (UnsupportedDeviceTypeError, grpc.StatusCode.INVALID_ARGUMENT),
    (InvalidParametersError, grpc.StatusCode.INVALID_ARGUMENT),
]


def status_code_for(error: Exception) -> grpc.StatusCode:
    for error_type, code in STATUS_CODES:
        if isinstance(error, error_type):
            return code
    return grpc.StatusCode.INTERNAL


def _decode(data: bytes) -> dict:
    return json.loads(data.decode('utf-8')) if data else {}


def _encode(message: dict) -> bytes:
    return json.dumps(message).encode('utf-8')


def _wrap(method_name: str, fn: Callable[[dict], dict]):
    def handler(request, context):
        try:
            return fn(request)
        except DriverError as e:
            logger.warning(f"{method_name} failed: {e}")
            context.abort(status_code_for(e), str(e))
    return handler


def add_json_service(server: grpc.Server, service_name: str,
                     methods: Dict[str, Callable[[dict], dict]]):
    """Register unary JSON methods under /<service_name>/<method>"""
    handlers = {
        name: grpc.unary_unary_rpc_method_handler(
            _wrap(name, fn),
            request_deserializer=_decode,
            response_serializer=_encode,
        )
        for name, fn in methods.items()
    }
    server.add_generic_rpc_handlers((grpc.method_handlers_generic_handler(service_name, handlers),))


def new_server(max_workers: int) -> grpc.Server:
    return grpc.server(futures.ThreadPoolExecutor(max_workers=max_workers))


def socket_path(endpoint: str) -> str:
    """Filesystem path of a unix:// endpoint, the endpoint itself otherwise"""
    if endpoint.startswith("unix://"):
        return endpoint[len("unix://"):]
    return endpoint


def listen(server: grpc.Server, endpoint: str) -> int:
    """Bind an insecure port; stale unix sockets are removed first"""
    if endpoint.startswith("unix://"):
        path = socket_path(endpoint)
        if os.path.exists(path):
            os.remove(path)
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
    port = server.add_insecure_port(endpoint)
    logger.info(f"gRPC listening on {endpoint}")
    return port


class JsonServiceClient:
    """Client side of a service registered with add_json_service"""

    def __init__(self, channel: grpc.Channel, service_name: str):
        self.channel = channel
        self.service_name = service_name

    def call(self, method: str, request: dict, timeout: float = None) -> dict:
        stub = self.channel.unary_unary(
            f"/{self.service_name}/{method}",
            request_serializer=_encode,
            response_deserializer=_decode,
        )
        return stub(request, timeout=timeout)


__all__ = [
    "status_code_for", "add_json_service", "new_server", "socket_path", "listen",
    "JsonServiceClient",
]
