"""
CDI Registry

Container Device Interface spec files (JSON) under the CDI spec
directories. Each spec declares a kind "<vendor>/<class>" and a list of
devices; a device is addressed as "<vendor>/<class>=<name>".
"""

import json
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..config import CDI_ROOT, CDI_VERSION, CDI_KIND
from ..errors import CDIError

logger = logging.getLogger(__name__)

SPEC_EXTENSION = ".json"


@dataclass
class CDISpec:
    """One spec file"""
    path: str
    data: dict = field(default_factory=dict)

    @property
    def kind(self) -> str:
        return self.data.get('kind', '')

    @property
    def vendor(self) -> str:
        return self.kind.split('/', 1)[0]

    @property
    def devices(self) -> List[dict]:
        return self.data.setdefault('devices', [])

    @devices.setter
    def devices(self, value: List[dict]):
        self.data['devices'] = value

    @property
    def name(self) -> str:
        return os.path.basename(self.path)

    @property
    def directory(self) -> str:
        return os.path.dirname(self.path)


def new_spec(kind: str = CDI_KIND) -> dict:
    return {"cdiVersion": CDI_VERSION, "kind": kind, "devices": []}


def generate_name_for_spec(spec: dict) -> str:
    """File name for a spec: "<vendor>-<class>.json" """
    kind = spec.get('kind', '')
    if '/' not in kind:
        raise CDIError(f"invalid CDI kind: '{kind}'")
    vendor, cdi_class = kind.split('/', 1)
    return f"{vendor}-{cdi_class}{SPEC_EXTENSION}"


class CDIRegistry:
    """
    Spec files of the CDI spec directories, loaded on refresh()

    Specs are written into the first spec directory.
    """

    def __init__(self, spec_dirs: List[str] = None):
        self.spec_dirs = list(spec_dirs or [CDI_ROOT])
        self._specs: List[CDISpec] = []
        self._devices: Dict[str, dict] = {}

    def refresh(self):
        specs = []
        devices = {}
        for spec_dir in self.spec_dirs:
            if not os.path.isdir(spec_dir):
                logger.debug(f"CDI spec dir {spec_dir} does not exist")
                continue
            for name in sorted(os.listdir(spec_dir)):
                if not name.endswith(SPEC_EXTENSION):
                    continue
                path = os.path.join(spec_dir, name)
                try:
                    with open(path) as f:
                        data = json.load(f)
                except (OSError, ValueError) as e:
                    raise CDIError(f"unable to read CDI spec {path}: {e}") from e
                spec = CDISpec(path=path, data=data)
                specs.append(spec)
                for device in spec.devices:
                    devices[f"{spec.kind}={device.get('name', '')}"] = device

        self._specs = specs
        self._devices = devices
        logger.debug(f"CDI registry refreshed: {len(specs)} spec(s), {len(devices)} device(s)")

    def vendor_specs(self, vendor: str) -> List[CDISpec]:
        return [spec for spec in self._specs if spec.vendor == vendor]

    def get_device(self, qualified_name: str) -> Optional[dict]:
        return self._devices.get(qualified_name)

    def device_names(self) -> List[str]:
        return sorted(self._devices)

    def write_spec(self, spec: dict, name: str, spec_dir: str = None):
        """Atomically (re)write a spec file and reload the registry"""
        spec_dir = spec_dir or self.spec_dirs[0]
        path = os.path.join(spec_dir, name)
        tmp_path = f"{path}.tmp"
        try:
            os.makedirs(spec_dir, exist_ok=True)
            with open(tmp_path, 'w') as f:
                json.dump(spec, f, indent=2)
            os.replace(tmp_path, path)
        except OSError as e:
            raise CDIError(f"failed writing CDI spec {path}: {e}") from e
        logger.debug(f"Wrote CDI spec {path} ({len(spec.get('devices', []))} devices)")
        self.refresh()


__all__ = ["CDISpec", "CDIRegistry", "new_spec", "generate_name_for_spec"]
