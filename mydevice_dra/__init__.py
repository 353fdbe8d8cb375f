"""
Mydevice DRA Driver

Dynamic Resource Allocation driver for "mydevice" devices:
- controller: scheduling-time allocation of claims to nodes
- kubelet_plugin: node-side prepare/unprepare and device publishing
"""

__version__ = "0.1.0"
