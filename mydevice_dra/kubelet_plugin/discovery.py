"""
Device discovery

Detects devices from the sysfs DRM directory (cardN / renderDN). Hosts
without DRM devices get a fixed set of fake devices instead.
"""

import logging
import os
import re
from dataclasses import dataclass
from typing import Dict

from ..config import SYSFS_DRM_DIR, FAKE_DEVICE_COUNT, CDI_KIND
from ..crd import MYDEVICE_TYPE0

logger = logging.getLogger(__name__)

CARD_RE = re.compile(r'^card[0-9]+$')
RENDERD_RE = re.compile(r'^renderD[0-9]+$')


@dataclass(frozen=True)
class DeviceInfo:
    """A device detected on this node"""
    uid: str                        # PCI_DBDF-VENDOR_ID-DEVICE_ID
    cdiname: str                    # device name in the CDI spec
    device_type: str = MYDEVICE_TYPE0
    card: str = ""                  # DRM card node, empty for fake devices
    renderd: str = ""               # DRM render node, can be empty

    def cdi_device(self) -> str:
        """Fully qualified CDI device name"""
        return f"{CDI_KIND}={self.cdiname}"


def enumerate_all_possible_devices(sysfs_drm_dir: str = SYSFS_DRM_DIR,
                                   fake_count: int = FAKE_DEVICE_COUNT) -> Dict[str, DeviceInfo]:
    """
    Detect DRM devices

    Returns:
        {uid: DeviceInfo}, fake devices when sysfs cannot be read
    """
    try:
        drm_files = sorted(os.listdir(sysfs_drm_dir))
    except OSError as e:
        logger.info(f"No DRM devices found ({sysfs_drm_dir}: {e}), using fake devices")
        return fake_devices(fake_count)

    logger.debug(f"Found {len(drm_files)} files in {sysfs_drm_dir}")
    devices = {}

    for drm_file in drm_files:
        if not CARD_RE.match(drm_file):
            continue
        logger.debug(f"Found DRM card device: {drm_file}")

        symlink = os.path.join(sysfs_drm_dir, drm_file)
        try:
            target = os.readlink(symlink)
        except OSError:
            logger.info(f"Could not read device DRM symlink '{symlink}', using fake devices")
            return fake_devices(fake_count)

        # <pci device>/drm/cardN -> <pci device>/drm
        drm_dev_dir = os.path.normpath(os.path.join(sysfs_drm_dir, target, ".."))
        try:
            drm_dev_files = os.listdir(drm_dev_dir)
        except OSError:
            logger.info(f"Could not read device DRM dir '{drm_dev_dir}', using fake devices")
            return fake_devices(fake_count)

        card = ""
        renderd = ""
        for name in drm_dev_files:
            if CARD_RE.match(name):
                card = name
            elif RENDERD_RE.match(name):
                renderd = name

        if not card:
            logger.error(f"Could not find DRM card device in {drm_dev_dir}, skipping")
            continue

        pci_dir = os.path.dirname(drm_dev_dir)
        try:
            device_id = _read_id(os.path.join(pci_dir, "device"))
            vendor_id = _read_id(os.path.join(pci_dir, "vendor"))
        except OSError as e:
            logger.error(f"Failed reading PCI ids in {pci_dir}: {e}")
            continue

        pci_dbdf = os.path.basename(pci_dir)
        uid = f"{pci_dbdf}-{vendor_id}-{device_id}"
        logger.info(f"Discovered device {uid} (card={card}, renderD={renderd or '-'})")
        devices[uid] = DeviceInfo(uid=uid, cdiname=uid, card=card, renderd=renderd)

    return devices


def _read_id(path: str) -> str:
    with open(path) as f:
        return f.read().strip()


def fake_devices(count: int = FAKE_DEVICE_COUNT) -> Dict[str, DeviceInfo]:
    devices = {}
    for idx in range(count):
        uid = f"fakeDevice{idx:02d}"
        devices[uid] = DeviceInfo(uid=uid, cdiname=uid)
    logger.info(f"Created {count} fake device(s)")
    return devices


__all__ = ["DeviceInfo", "enumerate_all_possible_devices", "fake_devices"]
