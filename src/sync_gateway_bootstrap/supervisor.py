"""
systemd integration for the Sync Gateway service.

The packaged unit starts Sync Gateway with the document named by its CONFIG
environment variable:

    [Service]
    Environment="CONFIG=/home/sync_gateway/sync_gateway.json"
    ExecStart=/opt/couchbase-sync-gateway/bin/sync_gateway ${CONFIG}

The bootstrap points that variable at the document it resolved, reloads
systemd, and finally enables and starts the unit.
"""

import os
import re
import logging
import subprocess
from typing import Callable, List
from .errors import SupervisorError
from .template import read_document, write_document

logger = logging.getLogger(os.getenv("LOGGER_NAME", "SYNC_GATEWAY_BOOTSTRAP"))

SYSTEMCTL = "systemctl"
SERVICE_SECTION = "[Service]"
CONFIG_POINTER_PATTERN = re.compile(r'^[ \t]*Environment="?CONFIG=[^\n]*$', re.MULTILINE)


def config_pointer_line(config_path: str) -> str:
    return f'Environment="CONFIG={config_path}"'


def rewrite_config_pointer(unit_content: str, config_path: str) -> str:
    """
    Return ``unit_content`` with its CONFIG= line pointing at ``config_path``.

    A unit without a CONFIG= line gets one as the first entry of [Service].

    Raises:
        SupervisorError: If the unit has no [Service] section to add it to.
    """
    line = config_pointer_line(config_path)
    if CONFIG_POINTER_PATTERN.search(unit_content):
        return CONFIG_POINTER_PATTERN.sub(lambda _: line, unit_content)

    if SERVICE_SECTION not in unit_content:
        raise SupervisorError(f"Unit file has no {SERVICE_SECTION} section to hold the CONFIG pointer")
    return unit_content.replace(SERVICE_SECTION, f"{SERVICE_SECTION}\n{line}", 1)


class SystemdSupervisor:
    """
    Manages the Sync Gateway unit through systemctl.

    Attributes:
        service_name (str): Unit name, e.g. "sync_gateway".
        unit_path (str): Path of the unit file holding the CONFIG= pointer.
        runner: subprocess.run compatible callable, replaceable in tests.
    """

    def __init__(self, service_name: str, unit_path: str, runner: Callable = subprocess.run):
        if not service_name:
            raise ValueError("service_name cannot be empty")
        self.service_name = service_name
        self.unit_path = unit_path
        self.runner = runner

    def _systemctl(self, *args: str) -> None:
        command: List[str] = [SYSTEMCTL, *args]
        logger.debug(f"Running: {' '.join(command)}")
        try:
            result = self.runner(command, capture_output=True, text=True)
        except OSError as e:
            raise SupervisorError(f"Could not run {' '.join(command)}: {e}")
        if result.returncode != 0:
            stderr = (result.stderr or "").strip()
            raise SupervisorError(f"{' '.join(command)} exited with {result.returncode}: {stderr}")

    def set_config_path(self, config_path: str) -> None:
        """
        Point the unit at ``config_path`` and reload systemd.

        Raises:
            ConfigFileNotFound / ConfigFileNotWritable: If the unit file is inaccessible.
            SupervisorError: If the unit cannot hold the pointer or daemon-reload fails.
        """
        content = read_document(self.unit_path)
        updated = rewrite_config_pointer(content, config_path)
        if updated != content:
            write_document(self.unit_path, updated)
            logger.info(f"Pointed {self.service_name} at {config_path} in {self.unit_path}")
        else:
            logger.info(f"{self.unit_path} already points at {config_path}")
        self._systemctl("daemon-reload")

    def start(self) -> None:
        """Enable the unit at boot and start it now."""
        logger.info(f"Starting {self.service_name}")
        self._systemctl("enable", self.service_name)
        self._systemctl("start", self.service_name)
        logger.info(f"{self.service_name} started")
