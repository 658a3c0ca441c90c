"""Collect phase - enumerate storage devices that can be erased."""

import json
import logging
import subprocess
from typing import Any, Callable, Dict, List, Optional

from .models import DeviceDescriptor, StorageType

logger = logging.getLogger(__name__)

LSBLK_COMMAND = ["lsblk", "-J", "-b", "-d", "-o", "NAME,PATH,MODEL,SERIAL,SIZE,ROTA,TRAN,TYPE"]

DEMO_DEVICE = DeviceDescriptor(
    name="Primary Drive",
    path="/dev/sda",
    model="Samsung SSD 980 PRO",
    serial="S6XNMU0R123456",
    firmware="5B2QGXA7",
    capacity_bytes=500 * 1000 ** 3,
    media_type=StorageType.SSD,
)


def _truthy(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip() in ("1", "true", "True")
    return bool(value)


def classify_media(entry: Dict[str, Any]) -> StorageType:
    """Guess the storage type from an lsblk entry."""
    name = (entry.get("name") or "").lower()
    transport = (entry.get("tran") or "").lower()
    if name.startswith("nvme") or transport == "nvme":
        return StorageType.NVME
    if name.startswith("mmcblk") or transport == "mmc":
        return StorageType.EMMC
    if _truthy(entry.get("rota")):
        return StorageType.HDD
    return StorageType.SSD


def parse_lsblk(output: str) -> List[DeviceDescriptor]:
    """Turn `lsblk -J -b` output into device descriptors, skipping non-disks."""
    data = json.loads(output)
    devices = []
    for entry in data.get("blockdevices", []):
        if entry.get("type") != "disk":
            continue
        try:
            size = int(entry.get("size") or 0)
        except (TypeError, ValueError):
            size = 0
        if size <= 0:
            continue
        name = entry.get("name") or ""
        devices.append(DeviceDescriptor(
            name=name,
            path=entry.get("path") or f"/dev/{name}",
            model=(entry.get("model") or "Unknown").strip(),
            serial=(entry.get("serial") or "Unknown").strip(),
            capacity_bytes=size,
            media_type=classify_media(entry),
        ))
    return devices


class DeviceCollector:
    """Lists block devices using lsblk."""

    def __init__(self, runner: Callable[..., subprocess.CompletedProcess] = subprocess.run):
        self._run = runner

    def list_devices(self) -> List[DeviceDescriptor]:
        """List all erasable disks; empty when lsblk is unavailable."""
        try:
            result = self._run(LSBLK_COMMAND, capture_output=True, text=True, check=True, timeout=10)
        except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError) as e:
            logger.warning("Device enumeration failed: %s", e)
            return []
        try:
            return parse_lsblk(result.stdout)
        except json.JSONDecodeError as e:
            logger.warning("Unreadable lsblk output: %s", e)
            return []

    def find(self, path: str) -> Optional[DeviceDescriptor]:
        for device in self.list_devices():
            if device.path == path:
                return device
        return None


class StaticDeviceSource:
    """Fixed device list, for demos and tests."""

    def __init__(self, devices: Optional[List[DeviceDescriptor]] = None):
        self.devices = list(devices) if devices is not None else [DEMO_DEVICE]

    def list_devices(self) -> List[DeviceDescriptor]:
        return list(self.devices)

    def find(self, path: str) -> Optional[DeviceDescriptor]:
        for device in self.devices:
            if device.path == path:
                return device
        return None
