"""Process entry points (mydevice-controller, mydevice-kubelet-plugin)"""
