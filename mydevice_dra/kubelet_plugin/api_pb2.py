"""kubelet DRA plugin API messages (v1alpha1, see api.proto)"""

from ..rpc.descriptors import build_file, message_class, repeated, scalar

DESCRIPTOR = build_file(
    "mydevice_dra/kubelet_plugin/api.proto",
    "v1alpha1",
    messages={
        "NodePrepareResourceRequest": [
            scalar(1, "namespace"),
            scalar(2, "claim_uid"),
            scalar(3, "claim_name"),
            scalar(4, "resource_handle"),
        ],
        "NodePrepareResourceResponse": [
            repeated(1, "cdi_devices"),
        ],
        "NodeUnprepareResourceRequest": [
            scalar(1, "namespace"),
            scalar(2, "claim_uid"),
            scalar(3, "claim_name"),
            repeated(4, "cdi_devices"),
        ],
        "NodeUnprepareResourceResponse": [],
    },
    services={
        "Node": [
            ("NodePrepareResource", "NodePrepareResourceRequest", "NodePrepareResourceResponse"),
            ("NodeUnprepareResource", "NodeUnprepareResourceRequest", "NodeUnprepareResourceResponse"),
        ],
    },
)

NodePrepareResourceRequest = message_class(DESCRIPTOR, "NodePrepareResourceRequest")
NodePrepareResourceResponse = message_class(DESCRIPTOR, "NodePrepareResourceResponse")
NodeUnprepareResourceRequest = message_class(DESCRIPTOR, "NodeUnprepareResourceRequest")
NodeUnprepareResourceResponse = message_class(DESCRIPTOR, "NodeUnprepareResourceResponse")
