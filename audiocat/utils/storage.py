"""Storage medium detection for choosing import concurrency."""

import enum
import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

SYS_DEV_BLOCK = Path("/sys/dev/block")


class StorageType(enum.Enum):
    SSD = "ssd"
    HDD = "hdd"
    UNKNOWN = "unknown"


def detect_storage_type(path: Path, sys_dev_block: Path = SYS_DEV_BLOCK) -> StorageType:
    """Detect whether ``path`` lives on a rotational disk.

    Uses the Linux sysfs ``queue/rotational`` flag of the block device (or of
    its parent device for partitions). Anything that can't be determined,
    including other platforms, reports UNKNOWN.
    """
    try:
        st = os.stat(path)
    except OSError:
        return StorageType.UNKNOWN

    device_dir = sys_dev_block / f"{os.major(st.st_dev)}:{os.minor(st.st_dev)}"
    try:
        device_dir = device_dir.resolve(strict=True)
    except (OSError, RuntimeError):
        return StorageType.UNKNOWN

    for candidate in (device_dir, device_dir.parent):
        flag = candidate / "queue" / "rotational"
        try:
            value = flag.read_text().strip()
        except OSError:
            continue
        storage_type = StorageType.HDD if value == "1" else StorageType.SSD
        logger.debug(f"Storage for {path} detected as {storage_type.value}")
        return storage_type

    return StorageType.UNKNOWN
