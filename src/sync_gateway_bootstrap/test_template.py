"""
Unit Tests for Configuration Document Templating

Test Coverage:
    - Literal substitution of every occurrence, anywhere in the text
    - Zero-occurrence no-op leaves the file untouched
    - Sequential directives operate on the rewritten document
    - File mode, owner and group preservation
    - Symlinked documents rewritten through the link
    - Missing / unwritable documents
    - Database extraction from the resolved JSON
"""

import os
import json
import shutil
import stat
import tempfile
import unittest
from unittest.mock import ANY, Mock, patch

try:
    from .template import substitute, load_databases, DatabaseDescriptor
    from .directives import parse_assignment, PlaceholderDirective, DirectiveKind
    from .errors import ConfigFileNotFound, ConfigFileNotWritable, ConfigDocumentInvalid
except ImportError:
    from template import substitute, load_databases, DatabaseDescriptor
    from directives import parse_assignment, PlaceholderDirective, DirectiveKind
    from errors import ConfigFileNotFound, ConfigFileNotWritable, ConfigDocumentInvalid


class DocumentTestCase(unittest.TestCase):
    """Base class that provides a scratch directory for configuration documents."""

    def setUp(self):
        self.tmpdir = tempfile.mkdtemp()
        self.path = os.path.join(self.tmpdir, "sync_gateway.json")

    def tearDown(self):
        shutil.rmtree(self.tmpdir, ignore_errors=True)

    def write(self, content):
        with open(self.path, 'w') as f:
            f.write(content)

    def read(self):
        with open(self.path) as f:
            return f.read()


class TestSubstitute(DocumentTestCase):
    """Test suite for substitute."""

    def test_replaces_every_occurrence(self):
        self.write('{"<DB_NAME>": {"bucket": "<DB_NAME>"}, "comment": "db <DB_NAME>"}')
        count = substitute(self.path, parse_assignment("<DB_NAME>=travel"), "travel")

        self.assertEqual(count, 3)
        content = self.read()
        self.assertNotIn("<DB_NAME>", content)
        self.assertEqual(content, '{"travel": {"bucket": "travel"}, "comment": "db travel"}')

    def test_no_regex_semantics(self):
        self.write('a.b a+b axb')
        substitute(self.path, parse_assignment("a.b=X"), "X")
        self.assertEqual(self.read(), 'X a+b axb')

    def test_zero_occurrences_is_noop(self):
        self.write('{"databases": {}}')
        before = os.stat(self.path).st_mtime_ns

        with patch('sync_gateway_bootstrap.template.write_document') as mock_write:
            count = substitute(self.path, parse_assignment("<MISSING>=x"), "x")

        self.assertEqual(count, 0)
        mock_write.assert_not_called()
        self.assertEqual(self.read(), '{"databases": {}}')
        self.assertEqual(os.stat(self.path).st_mtime_ns, before)

    def test_sequential_directives_see_previous_rewrite(self):
        self.write('"<A>"')
        substitute(self.path, parse_assignment("<A>=<B>"), "<B>")
        substitute(self.path, parse_assignment("<B>=done"), "done")
        self.assertEqual(self.read(), '"done"')

    def test_preserves_file_mode(self):
        self.write('<X>')
        os.chmod(self.path, 0o640)
        substitute(self.path, parse_assignment("<X>=y"), "y")
        self.assertEqual(stat.S_IMODE(os.stat(self.path).st_mode), 0o640)

    def test_no_temp_files_left_behind(self):
        self.write('<X>')
        substitute(self.path, parse_assignment("<X>=y"), "y")
        self.assertEqual(os.listdir(self.tmpdir), ["sync_gateway.json"])

    def test_keeps_owner_and_group(self):
        self.write('<X>')
        original = os.stat(self.path)
        with patch('sync_gateway_bootstrap.template.os.chown') as mock_chown:
            substitute(self.path, parse_assignment("<X>=y"), "y")

        mock_chown.assert_called_once_with(ANY, original.st_uid, original.st_gid)
        self.assertEqual(self.read(), 'y')

    @unittest.skipUnless(hasattr(os, "geteuid") and os.geteuid() == 0, "requires root to chown")
    def test_service_owned_document_stays_service_owned(self):
        self.write('{"x":"<A>"}')
        os.chown(self.path, 4321, 4321)
        os.chmod(self.path, 0o600)

        substitute(self.path, parse_assignment("<A>=v"), "v")

        info = os.stat(self.path)
        self.assertEqual((info.st_uid, info.st_gid), (4321, 4321))
        self.assertEqual(stat.S_IMODE(info.st_mode), 0o600)
        self.assertEqual(self.read(), '{"x":"v"}')

    def test_symlinked_document_rewrites_target(self):
        real_dir = os.path.join(self.tmpdir, "real")
        os.mkdir(real_dir)
        real_path = os.path.join(real_dir, "sync_gateway.json")
        with open(real_path, 'w') as f:
            f.write('{"x":"<A>"}')
        os.symlink(real_path, self.path)

        substitute(self.path, parse_assignment("<A>=v"), "v")

        self.assertTrue(os.path.islink(self.path))
        with open(real_path) as f:
            self.assertEqual(f.read(), '{"x":"v"}')
        self.assertEqual(sorted(os.listdir(real_dir)), ["sync_gateway.json"])

    def test_missing_document_raises(self):
        with self.assertRaises(ConfigFileNotFound):
            substitute(os.path.join(self.tmpdir, "nope.json"), parse_assignment("<X>=y"), "y")

    def test_unwritable_document_raises(self):
        self.write('<X>')
        with patch('sync_gateway_bootstrap.template.os.access', return_value=False):
            with self.assertRaises(ConfigFileNotWritable):
                substitute(self.path, parse_assignment("<X>=y"), "y")
        self.assertEqual(self.read(), '<X>')

    def test_structured_logging(self):
        self.write('<X> <X>')
        structured_logger = Mock()
        directive = PlaceholderDirective(name="<X>", kind=DirectiveKind.ASG_REFERENCE, asg_name="asg")
        substitute(self.path, directive, "http://h", structured_logger=structured_logger)

        kwargs = structured_logger.log_placeholder_resolution.call_args.kwargs
        self.assertEqual(kwargs["placeholder"], "<X>")
        self.assertEqual(kwargs["kind"], "asg_reference")
        self.assertEqual(kwargs["replacements"], 2)


class TestLoadDatabases(DocumentTestCase):
    """Test suite for load_databases."""

    def test_parses_databases_in_document_order(self):
        self.write(json.dumps({
            "interface": ":4984",
            "databases": {
                "db2": {"server": "http://a:8091,http://b:8091", "username": "u2", "password": "p2"},
                "db1": {"server": "http://c:8091", "username": "u1", "password": "p1", "bucket": "b1"},
            }
        }))
        databases = load_databases(self.path)

        self.assertEqual([d.name for d in databases], ["db2", "db1"])
        self.assertEqual(databases[0].server_urls, ("http://a:8091", "http://b:8091"))
        self.assertEqual(databases[0].primary_url, "http://a:8091")
        self.assertIsNone(databases[0].bucket)
        self.assertEqual(databases[1], DatabaseDescriptor(
            name="db1", server_urls=("http://c:8091",), username="u1", password="p1", bucket="b1"))

    def test_empty_bucket_means_no_requirement(self):
        self.write('{"databases": {"db": {"server": "http://a:8091", "bucket": ""}}}')
        self.assertIsNone(load_databases(self.path)[0].bucket)

    def test_entry_without_server_is_skipped(self):
        self.write('{"databases": {"walrus": {"bucket": "b"}, "db": {"server": "http://a:8091"}}}')
        self.assertEqual([d.name for d in load_databases(self.path)], ["db"])

    def test_no_databases_key(self):
        self.write('{"interface": ":4984"}')
        self.assertEqual(load_databases(self.path), [])

    def test_invalid_json_raises(self):
        self.write('{"databases": {"db": {"server": <SERVERS>}}}')
        with self.assertRaises(ConfigDocumentInvalid):
            load_databases(self.path)

    def test_databases_not_a_mapping_raises(self):
        self.write('{"databases": ["db"]}')
        with self.assertRaises(ConfigDocumentInvalid):
            load_databases(self.path)

    def test_missing_document_raises(self):
        with self.assertRaises(ConfigFileNotFound):
            load_databases(self.path)


if __name__ == '__main__':
    unittest.main()
