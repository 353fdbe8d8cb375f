"""
Protobuf file descriptors for the kubelet plugin APIs

The kubelet APIs are small proto3 files with string/bool fields only.
Their descriptors are assembled here and added to the default pool the
same way protoc output does, so message classes come from the protobuf
runtime and speak the standard wire format.
"""

from typing import Dict, List, Tuple

from google.protobuf import descriptor_pool
from google.protobuf.descriptor import FileDescriptor
from google.protobuf.descriptor_pb2 import FieldDescriptorProto, FileDescriptorProto
from google.protobuf.message_factory import GetMessageClass

STRING = FieldDescriptorProto.TYPE_STRING
BOOL = FieldDescriptorProto.TYPE_BOOL


def scalar(number: int, name: str, field_type: int = STRING) -> FieldDescriptorProto:
    return FieldDescriptorProto(name=name, number=number, type=field_type,
                                label=FieldDescriptorProto.LABEL_OPTIONAL)


def repeated(number: int, name: str, field_type: int = STRING) -> FieldDescriptorProto:
    return FieldDescriptorProto(name=name, number=number, type=field_type,
                                label=FieldDescriptorProto.LABEL_REPEATED)


def build_file(name: str, package: str,
               messages: Dict[str, List[FieldDescriptorProto]],
               services: Dict[str, List[Tuple[str, str, str]]] = None) -> FileDescriptor:
    """
    Register a proto3 file with the default descriptor pool.

    Args:
        name: file name, as protoc would record it
        package: proto package
        messages: message name -> fields
        services: service name -> (method, input message, output message)
    """
    file_proto = FileDescriptorProto(name=name, package=package, syntax="proto3")
    for message_name, fields in messages.items():
        message = file_proto.message_type.add(name=message_name)
        message.field.extend(fields)
    for service_name, methods in (services or {}).items():
        service = file_proto.service.add(name=service_name)
        for method_name, input_type, output_type in methods:
            service.method.add(
                name=method_name,
                input_type=f".{package}.{input_type}",
                output_type=f".{package}.{output_type}",
            )
    return descriptor_pool.Default().AddSerializedFile(file_proto.SerializeToString())


def message_class(file_descriptor: FileDescriptor, name: str):
    return GetMessageClass(file_descriptor.message_types_by_name[name])


__all__ = ["STRING", "BOOL", "scalar", "repeated", "build_file", "message_class"]
