"""kubelet plugin registration messages (pluginregistration v1, see registration.proto)"""

from ..rpc.descriptors import BOOL, build_file, message_class, repeated, scalar

DESCRIPTOR = build_file(
    "mydevice_dra/kubelet_plugin/registration.proto",
    "pluginregistration",
    messages={
        "PluginInfo": [
            scalar(1, "type"),
            scalar(2, "name"),
            scalar(3, "endpoint"),
            repeated(4, "supported_versions"),
        ],
        "RegistrationStatus": [
            scalar(1, "plugin_registered", BOOL),
            scalar(2, "error"),
        ],
        "RegistrationStatusResponse": [],
        "InfoRequest": [],
    },
    services={
        "Registration": [
            ("GetInfo", "InfoRequest", "PluginInfo"),
            ("NotifyRegistrationStatus", "RegistrationStatus", "RegistrationStatusResponse"),
        ],
    },
)

PluginInfo = message_class(DESCRIPTOR, "PluginInfo")
RegistrationStatus = message_class(DESCRIPTOR, "RegistrationStatus")
RegistrationStatusResponse = message_class(DESCRIPTOR, "RegistrationStatusResponse")
InfoRequest = message_class(DESCRIPTOR, "InfoRequest")
