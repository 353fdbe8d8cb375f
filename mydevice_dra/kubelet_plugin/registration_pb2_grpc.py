"""Client and server classes for the kubelet plugin Registration service"""

import grpc

from . import registration_pb2


class RegistrationStub(object):
    """Client used by kubelet's plugin watcher"""

    def __init__(self, channel):
        self.GetInfo = channel.unary_unary(
            '/pluginregistration.Registration/GetInfo',
            request_serializer=registration_pb2.InfoRequest.SerializeToString,
            response_deserializer=registration_pb2.PluginInfo.FromString,
        )
        self.NotifyRegistrationStatus = channel.unary_unary(
            '/pluginregistration.Registration/NotifyRegistrationStatus',
            request_serializer=registration_pb2.RegistrationStatus.SerializeToString,
            response_deserializer=registration_pb2.RegistrationStatusResponse.FromString,
        )


class RegistrationServicer(object):
    """Base class for the plugin side of the Registration service"""

    def GetInfo(self, request, context):
        context.set_code(grpc.StatusCode.UNIMPLEMENTED)
        context.set_details('Method not implemented!')
        raise NotImplementedError('Method not implemented!')

    def NotifyRegistrationStatus(self, request, context):
        context.set_code(grpc.StatusCode.UNIMPLEMENTED)
        context.set_details('Method not implemented!')
        raise NotImplementedError('Method not implemented!')


def add_RegistrationServicer_to_server(servicer, server):
    rpc_method_handlers = {
        'GetInfo': grpc.unary_unary_rpc_method_handler(
            servicer.GetInfo,
            request_deserializer=registration_pb2.InfoRequest.FromString,
            response_serializer=registration_pb2.PluginInfo.SerializeToString,
        ),
        'NotifyRegistrationStatus': grpc.unary_unary_rpc_method_handler(
            servicer.NotifyRegistrationStatus,
            request_deserializer=registration_pb2.RegistrationStatus.FromString,
            response_serializer=registration_pb2.RegistrationStatusResponse.SerializeToString,
        ),
    }
    generic_handler = grpc.method_handlers_generic_handler(
        'pluginregistration.Registration', rpc_method_handlers)
    server.add_generic_rpc_handlers((generic_handler,))
