"""Client and server classes for the kubelet DRA Node service (v1alpha1)"""

import grpc

from . import api_pb2


class NodeStub(object):
    """Client used by kubelet to prepare and unprepare claims"""

    def __init__(self, channel):
        self.NodePrepareResource = channel.unary_unary(
            '/v1alpha1.Node/NodePrepareResource',
            request_serializer=api_pb2.NodePrepareResourceRequest.SerializeToString,
            response_deserializer=api_pb2.NodePrepareResourceResponse.FromString,
        )
        self.NodeUnprepareResource = channel.unary_unary(
            '/v1alpha1.Node/NodeUnprepareResource',
            request_serializer=api_pb2.NodeUnprepareResourceRequest.SerializeToString,
            response_deserializer=api_pb2.NodeUnprepareResourceResponse.FromString,
        )


class NodeServicer(object):
    """Base class for the plugin side of the Node service"""

    def NodePrepareResource(self, request, context):
        context.set_code(grpc.StatusCode.UNIMPLEMENTED)
        context.set_details('Method not implemented!')
        raise NotImplementedError('Method not implemented!')

    def NodeUnprepareResource(self, request, context):
        context.set_code(grpc.StatusCode.UNIMPLEMENTED)
        context.set_details('Method not implemented!')
        raise NotImplementedError('Method not implemented!')


def add_NodeServicer_to_server(servicer, server):
    rpc_method_handlers = {
        'NodePrepareResource': grpc.unary_unary_rpc_method_handler(
            servicer.NodePrepareResource,
            request_deserializer=api_pb2.NodePrepareResourceRequest.FromString,
            response_serializer=api_pb2.NodePrepareResourceResponse.SerializeToString,
        ),
        'NodeUnprepareResource': grpc.unary_unary_rpc_method_handler(
            servicer.NodeUnprepareResource,
            request_deserializer=api_pb2.NodeUnprepareResourceRequest.FromString,
            response_serializer=api_pb2.NodeUnprepareResourceResponse.SerializeToString,
        ),
    }
    generic_handler = grpc.method_handlers_generic_handler('v1alpha1.Node', rpc_method_handlers)
    server.add_generic_rpc_handlers((generic_handler,))
