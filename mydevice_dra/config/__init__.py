"""
Configuration Module

Environment variables and driver-wide settings. Command-line flags in
``mydevice_dra.cmd`` override these defaults.
"""

import os

# =============================================================================
# CRD / API group
# =============================================================================
API_GROUP = os.environ.get('MYDEVICE_API_GROUP', 'mydevice.resource.example.com')
API_VERSION = os.environ.get('MYDEVICE_API_VERSION', 'v1alpha')
API_GROUP_VERSION = f"{API_GROUP}/{API_VERSION}"

ALLOCATION_STATE_KIND = "MydeviceAllocationState"
ALLOCATION_STATE_PLURAL = "mydeviceallocationstates"
CLAIM_PARAMETERS_KIND = "MydeviceClaimParameters"
CLAIM_PARAMETERS_PLURAL = "mydeviceclaimparameters"
CLASS_PARAMETERS_KIND = "MydeviceClassParameters"
CLASS_PARAMETERS_PLURAL = "mydeviceclassparameters"

# =============================================================================
# Kubernetes client
# =============================================================================
NAMESPACE = os.environ.get('POD_NAMESPACE', 'default')
NODE_NAME = os.environ.get('NODE_NAME', '')
KUBECONFIG = os.environ.get('KUBECONFIG', '')
API_TIMEOUT = float(os.environ.get('MYDEVICE_API_TIMEOUT', '10'))

# =============================================================================
# Conflict retry (reload-modify-save)
# =============================================================================
RETRY_STEPS = int(os.environ.get('MYDEVICE_RETRY_STEPS', '5'))
RETRY_DURATION = float(os.environ.get('MYDEVICE_RETRY_DURATION', '0.01'))
RETRY_FACTOR = float(os.environ.get('MYDEVICE_RETRY_FACTOR', '1.0'))
RETRY_JITTER = float(os.environ.get('MYDEVICE_RETRY_JITTER', '0.1'))

# =============================================================================
# Controller
# =============================================================================
CONTROLLER_WORKERS = int(os.environ.get('MYDEVICE_WORKERS', '10'))
CONTROLLER_ENDPOINT = os.environ.get('MYDEVICE_CONTROLLER_ENDPOINT', '[::]:50051')
LEADER_ELECTION_LEASE_DURATION = int(os.environ.get('MYDEVICE_LEASE_DURATION', '15'))
LEADER_ELECTION_RENEW_DEADLINE = int(os.environ.get('MYDEVICE_RENEW_DEADLINE', '10'))
LEADER_ELECTION_RETRY_PERIOD = int(os.environ.get('MYDEVICE_RETRY_PERIOD', '5'))

# =============================================================================
# Kubelet plugin
# =============================================================================
DRIVER_NAME = os.environ.get('MYDEVICE_DRIVER_NAME', API_GROUP)
PLUGIN_DIR = f"/var/lib/kubelet/plugins/{DRIVER_NAME}"
PLUGIN_SOCKET_PATH = f"{PLUGIN_DIR}/plugin.sock"
PLUGIN_ENDPOINT = os.environ.get('MYDEVICE_PLUGIN_ENDPOINT', f"unix://{PLUGIN_SOCKET_PATH}")
PLUGIN_WORKERS = int(os.environ.get('MYDEVICE_PLUGIN_WORKERS', '4'))

# kubelet's plugin watcher picks up sockets in this directory
REGISTRAR_DIR = os.environ.get('MYDEVICE_REGISTRAR_DIR', '/var/lib/kubelet/plugins_registry')
REGISTRAR_SOCKET_PATH = f"{REGISTRAR_DIR}/{DRIVER_NAME}.sock"
REGISTRAR_ENDPOINT = os.environ.get('MYDEVICE_REGISTRAR_ENDPOINT', f"unix://{REGISTRAR_SOCKET_PATH}")
DRA_PLUGIN_TYPE = "DRAPlugin"
DRA_SUPPORTED_VERSIONS = ["1.0.0"]

SYSFS_DRM_DIR = os.environ.get('SYSFS_DRM_DIR', '/sys/class/drm/')
FAKE_DEVICE_COUNT = int(os.environ.get('MYDEVICE_FAKE_DEVICES', '5'))

# =============================================================================
# CDI
# =============================================================================
CDI_ROOT = os.environ.get('CDI_ROOT', '/etc/cdi')
CDI_VERSION = "0.5.0"
CDI_VENDOR = os.environ.get('CDI_VENDOR', 'example.com')
CDI_CLASS = os.environ.get('CDI_CLASS', 'mydevice')
CDI_KIND = f"{CDI_VENDOR}/{CDI_CLASS}"

# =============================================================================
# HTTP diagnostics
# =============================================================================
HTTP_ENDPOINT = os.environ.get('MYDEVICE_HTTP_ENDPOINT', '')

# =============================================================================
# Logging
# =============================================================================
LOG_LEVEL = os.environ.get('MYDEVICE_LOG_LEVEL', 'INFO')


def get_config_summary() -> dict:
    """Current settings, as logged at startup"""
    return {
        "api_group_version": API_GROUP_VERSION,
        "namespace": NAMESPACE,
        "node_name": NODE_NAME,
        "workers": CONTROLLER_WORKERS,
        "controller_endpoint": CONTROLLER_ENDPOINT,
        "plugin_endpoint": PLUGIN_ENDPOINT,
        "registrar_endpoint": REGISTRAR_ENDPOINT,
        "cdi_root": CDI_ROOT,
        "cdi_kind": CDI_KIND,
        "retry_steps": RETRY_STEPS,
    }
