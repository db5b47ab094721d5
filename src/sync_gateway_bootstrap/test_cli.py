"""
Unit Tests for the Command-Line Surface and Entry Point

Test Coverage:
    - Repeatable --auto-fill / --auto-fill-asg parsing, order preserved
    - Boolean flags and defaults from configuration
    - Malformed directives and unknown flags rejected with usage (exit 2)
    - main() exit codes for success, bootstrap errors and invalid configuration
"""

import io
import unittest
from contextlib import redirect_stderr
from unittest.mock import Mock, patch

try:
    from .cli import parse_args
    from .config import Config
    from .directives import DirectiveKind
    from .errors import ReadinessTimeout
    from . import __main__ as entry
except ImportError:
    from cli import parse_args
    from config import Config
    from directives import DirectiveKind
    from errors import ReadinessTimeout
    from sync_gateway_bootstrap import __main__ as entry


class TestParseArgs(unittest.TestCase):

    def setUp(self):
        self.cfg = Config()
        self.cfg.sync_gateway_config = "/home/sync_gateway/sync_gateway.json"

    def test_defaults(self):
        options = parse_args([], self.cfg)
        self.assertEqual(options.config_path, "/home/sync_gateway/sync_gateway.json")
        self.assertEqual(options.asg_directives, [])
        self.assertEqual(options.literal_directives, [])
        self.assertFalse(options.use_public_hostname)
        self.assertFalse(options.skip_wait)
        self.assertIsNone(options.max_attempts)
        self.assertIsNone(options.interval_seconds)

    def test_full_command_line(self):
        options = parse_args([
            "--auto-fill-asg", "<SERVERS>=couchbase:8091",
            "--auto-fill", "<BUCKET_NAME>=travel",
            "--auto-fill", "<DB_PASSWORD>=p=w",
            "--use-public-hostname",
            "--config", "/tmp/sg.json",
            "--skip-wait",
            "--max-attempts", "10",
            "--interval", "2.5",
        ], self.cfg)

        self.assertEqual(len(options.asg_directives), 1)
        asg = options.asg_directives[0]
        self.assertEqual((asg.name, asg.kind, asg.asg_name, asg.port),
                         ("<SERVERS>", DirectiveKind.ASG_REFERENCE, "couchbase", 8091))
        self.assertEqual([(d.name, d.value) for d in options.literal_directives],
                         [("<BUCKET_NAME>", "travel"), ("<DB_PASSWORD>", "p=w")])
        self.assertTrue(options.use_public_hostname)
        self.assertTrue(options.skip_wait)
        self.assertEqual(options.config_path, "/tmp/sg.json")
        self.assertEqual(options.max_attempts, 10)
        self.assertEqual(options.interval_seconds, 2.5)

    def test_malformed_directive_exits_with_usage(self):
        stderr = io.StringIO()
        with redirect_stderr(stderr), self.assertRaises(SystemExit) as context:
            parse_args(["--auto-fill", "<NO_SEPARATOR>"], self.cfg)
        self.assertEqual(context.exception.code, 2)
        self.assertIn("usage:", stderr.getvalue())
        self.assertIn("Malformed directive", stderr.getvalue())

    def test_bad_port_exits(self):
        with redirect_stderr(io.StringIO()), self.assertRaises(SystemExit) as context:
            parse_args(["--auto-fill-asg", "<S>=asg:port"], self.cfg)
        self.assertEqual(context.exception.code, 2)

    def test_unknown_flag_exits(self):
        with redirect_stderr(io.StringIO()), self.assertRaises(SystemExit) as context:
            parse_args(["--frobnicate"], self.cfg)
        self.assertEqual(context.exception.code, 2)

    def test_invalid_max_attempts_exits(self):
        for value in ["0", "abc"]:
            with self.subTest(value=value):
                with redirect_stderr(io.StringIO()), self.assertRaises(SystemExit):
                    parse_args(["--max-attempts", value], self.cfg)


class TestMain(unittest.TestCase):

    def setUp(self):
        self.mock_logger = Mock(handlers=[])
        patchers = [
            patch.object(entry, 'setup_logger', return_value=self.mock_logger),
            patch.object(entry, 'validate_configuration', return_value=[]),
            patch.object(entry, 'run_bootstrap'),
        ]
        _, self.mock_validate, self.mock_run = [p.start() for p in patchers]
        for p in patchers:
            self.addCleanup(p.stop)

    def test_success_exits_zero(self):
        with self.assertRaises(SystemExit) as context:
            entry.main(["--skip-wait", "--config", "/tmp/sg.json"])
        self.assertEqual(context.exception.code, 0)
        options = self.mock_run.call_args.args[0]
        self.assertTrue(options.skip_wait)
        self.assertEqual(options.config_path, "/tmp/sg.json")

    def test_bootstrap_error_exits_one(self):
        self.mock_run.side_effect = ReadinessTimeout("db1", 200, "initializing")
        with self.assertRaises(SystemExit) as context:
            entry.main([])
        self.assertEqual(context.exception.code, 1)
        self.mock_logger.critical.assert_called_once()

    def test_unexpected_error_exits_one(self):
        self.mock_run.side_effect = RuntimeError("boom")
        with self.assertRaises(SystemExit) as context:
            entry.main([])
        self.assertEqual(context.exception.code, 1)

    def test_keyboard_interrupt_exits_130(self):
        self.mock_run.side_effect = KeyboardInterrupt()
        with self.assertRaises(SystemExit) as context:
            entry.main([])
        self.assertEqual(context.exception.code, 130)

    def test_invalid_configuration_exits_one(self):
        self.mock_validate.return_value = ["systemd unit file not found: /nope"]
        with self.assertRaises(SystemExit) as context:
            entry.main([])
        self.assertEqual(context.exception.code, 1)
        self.mock_run.assert_not_called()


if __name__ == '__main__':
    unittest.main()
