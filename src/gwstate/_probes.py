"""Device identity probes (serial number, build metadata, credentials).

All probes are blocking file reads; callers run them in an executor.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Protocol

import psutil

from gwstate.config import DevicePaths

_logger = logging.getLogger(__name__)

_REPO_FILES = ("REPO_BRANCH", "REPO_HEAD", "REPO_TAG")


class DeviceProbe(Protocol):
    def read_serial(self) -> str | None: ...

    def read_repo_info(self) -> tuple[str | None, str | None, str | None]: ...

    def read_ssh_password(self) -> str | None: ...

    def memory_stats(self) -> dict[str, Any]: ...

    def rebooted_due_to_issue(self, reset: bool = False) -> bool: ...


class FileDeviceProbe:
    """`DeviceProbe` reading the files laid down by the device image."""

    def __init__(self, paths: DevicePaths | None = None) -> None:
        self._paths = paths or DevicePaths()

    def read_serial(self) -> str | None:
        # Not every platform exposes a serial.
        try:
            return Path(self._paths.serial_path).read_text(encoding="utf-8").strip()
        except OSError:
            _logger.debug("No serial at %s", self._paths.serial_path)
            return None

    def read_repo_info(self) -> tuple[str | None, str | None, str | None]:
        base = Path(self._paths.repo_info_dir)
        try:
            branch, head, tag = (
                (base / name).read_text(encoding="utf-8").strip() for name in _REPO_FILES
            )
        except OSError:
            _logger.error("Unable to read git repo data from %s", base, exc_info=True)
            return None, None, None
        return branch, head, tag

    def read_ssh_password(self) -> str | None:
        try:
            return Path(self._paths.password_path).read_text(encoding="utf-8").strip() or None
        except OSError:
            _logger.error("Unable to read SSH password from %s", self._paths.password_path)
            return None

    def memory_stats(self) -> dict[str, Any]:
        return dict(psutil.virtual_memory()._asdict())

    def rebooted_due_to_issue(self, reset: bool = False) -> bool:
        marker = Path(self._paths.reboot_marker)
        try:
            if not marker.exists():
                return False
            _logger.info("System rebooted due to issue")
            if reset:
                marker.unlink()
            return True
        except OSError:
            return False
