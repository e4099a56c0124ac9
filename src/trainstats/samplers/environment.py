import os
import platform
import socket
import subprocess
import sys
from typing import Optional

import torch

from trainstats.errors import HostnameUnavailable
from trainstats.loggers.error_log import get_error_logger
from trainstats.reports.schema import SoftwareInfo
from trainstats.session import get_process_uid


class EnvironmentInfo:
    """
    Static software environment for the initialization report.

    Hostname resolution, in order:
      1) COMPUTERNAME / HOSTNAME environment variables
      2) socket.gethostname()
      3) the external `hostname` command, killed after `hostname_timeout_sec`

    Failure is never fatal: the hostname is then None and a warning is logged.
    Runs once per listener, on the first iteration only.
    """

    def __init__(self, hostname_timeout_sec: float = 2.0) -> None:
        self.hostname_timeout_sec = float(hostname_timeout_sec)
        self.logger = get_error_logger("EnvironmentInfo")

    def _query_hostname(self) -> str:
        for var in ("COMPUTERNAME", "HOSTNAME"):
            value = os.environ.get(var, "").strip()
            if value:
                return value

        try:
            value = socket.gethostname().strip()
            if value:
                return value
        except OSError as e:
            self.logger.debug(f"[TrainStats] socket.gethostname failed: {e}")

        try:
            proc = subprocess.run(
                ["hostname"],
                capture_output=True,
                text=True,
                timeout=self.hostname_timeout_sec,
                check=False,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            raise HostnameUnavailable(f"hostname command failed: {e}") from e

        value = (proc.stdout or "").strip()
        if proc.returncode != 0 or not value:
            raise HostnameUnavailable(
                f"hostname command returned {proc.returncode} with no output"
            )
        return value

    def hostname(self) -> Optional[str]:
        try:
            return self._query_hostname()
        except HostnameUnavailable as e:
            self.logger.warning(f"[TrainStats] Hostname unavailable: {e}")
            return None

    def software_info(self) -> SoftwareInfo:
        return SoftwareInfo(
            arch=platform.machine(),
            os_name=platform.system(),
            runtime_name=platform.python_implementation(),
            runtime_version=platform.python_version(),
            runtime_spec_version=f"{sys.version_info.major}.{sys.version_info.minor}",
            backend=f"torch {torch.__version__}",
            dtype=str(torch.get_default_dtype()),
            hostname=self.hostname(),
            process_uid=get_process_uid(),
        )
