"""
Unit Tests for systemd Integration

Test Coverage:
    - CONFIG= pointer rewrite in existing units, quoted and unquoted
    - Pointer insertion when the unit has none
    - daemon-reload / enable / start command sequence
    - systemctl failures surfaced as SupervisorError
"""

import os
import shutil
import tempfile
import unittest
from unittest.mock import Mock, call

try:
    from .supervisor import SystemdSupervisor, rewrite_config_pointer
    from .errors import SupervisorError, ConfigFileNotFound
except ImportError:
    from supervisor import SystemdSupervisor, rewrite_config_pointer
    from errors import SupervisorError, ConfigFileNotFound

UNIT = """[Unit]
Description=Couchbase Sync Gateway server

[Service]
Environment="CONFIG=/home/sync_gateway/sync_gateway.json"
ExecStart=/opt/couchbase-sync-gateway/bin/sync_gateway ${CONFIG}
User=sync_gateway

[Install]
WantedBy=multi-user.target
"""


def completed(returncode=0, stderr=""):
    return Mock(returncode=returncode, stderr=stderr, stdout="")


class TestRewriteConfigPointer(unittest.TestCase):

    def test_replaces_existing_pointer(self):
        updated = rewrite_config_pointer(UNIT, "/opt/sg/resolved.json")
        self.assertIn('Environment="CONFIG=/opt/sg/resolved.json"\n', updated)
        self.assertNotIn("/home/sync_gateway/sync_gateway.json", updated)
        self.assertIn("ExecStart=/opt/couchbase-sync-gateway/bin/sync_gateway ${CONFIG}", updated)

    def test_replaces_unquoted_pointer(self):
        unit = "[Service]\nEnvironment=CONFIG=/old.json\nExecStart=/bin/sg ${CONFIG}\n"
        updated = rewrite_config_pointer(unit, "/new.json")
        self.assertEqual(updated, '[Service]\nEnvironment="CONFIG=/new.json"\nExecStart=/bin/sg ${CONFIG}\n')

    def test_inserts_pointer_when_missing(self):
        unit = "[Service]\nExecStart=/bin/sg ${CONFIG}\n"
        updated = rewrite_config_pointer(unit, "/new.json")
        self.assertEqual(updated, '[Service]\nEnvironment="CONFIG=/new.json"\nExecStart=/bin/sg ${CONFIG}\n')

    def test_no_service_section_raises(self):
        with self.assertRaises(SupervisorError):
            rewrite_config_pointer("[Unit]\nDescription=x\n", "/new.json")


class TestSystemdSupervisor(unittest.TestCase):

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.unit_path = os.path.join(self.tmpdir, "sync_gateway.service")
        with open(self.unit_path, 'w') as f:
            f.write(UNIT)
        self.runner = Mock(return_value=completed())
        self.supervisor = SystemdSupervisor("sync_gateway", self.unit_path, runner=self.runner)

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def test_set_config_path_rewrites_unit_and_reloads(self):
        self.supervisor.set_config_path("/opt/sg/resolved.json")

        with open(self.unit_path) as f:
            self.assertIn('Environment="CONFIG=/opt/sg/resolved.json"', f.read())
        self.runner.assert_called_once_with(["systemctl", "daemon-reload"], capture_output=True, text=True)

    def test_set_config_path_unchanged_still_reloads(self):
        self.supervisor.set_config_path("/home/sync_gateway/sync_gateway.json")
        self.runner.assert_called_once()

    def test_missing_unit_file_raises(self):
        supervisor = SystemdSupervisor("sync_gateway", os.path.join(self.tmpdir, "missing"), runner=self.runner)
        with self.assertRaises(ConfigFileNotFound):
            supervisor.set_config_path("/x.json")
        self.runner.assert_not_called()

    def test_start_enables_then_starts(self):
        self.supervisor.start()
        commands = [c.args[0] for c in self.runner.call_args_list]
        self.assertEqual(commands, [["systemctl", "enable", "sync_gateway"],
                                    ["systemctl", "start", "sync_gateway"]])

    def test_systemctl_failure_raises(self):
        self.runner.return_value = completed(returncode=5, stderr="Unit sync_gateway.service not found.")
        with self.assertRaises(SupervisorError) as context:
            self.supervisor.start()
        self.assertIn("not found", str(context.exception))
        self.runner.assert_called_once()

    def test_systemctl_missing_raises(self):
        self.runner.side_effect = FileNotFoundError("systemctl")
        with self.assertRaises(SupervisorError):
            self.supervisor.start()

    def test_empty_service_name(self):
        with self.assertRaises(ValueError):
            SystemdSupervisor("", self.unit_path)


if __name__ == '__main__':
    unittest.main()
