"""
Configuration document templating.

The Sync Gateway configuration is handled two ways:

- as opaque text, for placeholder substitution. Replacement is a literal
  substring match with no knowledge of JSON structure, so a token is replaced
  identically in keys, values and anywhere else it appears.
- as JSON, once fully resolved, to extract the ``databases`` the readiness
  gate has to wait for.
"""

import os
import json
import logging
import stat
import tempfile
import time
from dataclasses import dataclass
from typing import List, Optional, Tuple
from .directives import PlaceholderDirective
from .errors import ConfigFileNotFound, ConfigFileNotWritable, ConfigDocumentInvalid
from .structured_events import StructuredEventLogger

logger = logging.getLogger(os.getenv("LOGGER_NAME", "SYNC_GATEWAY_BOOTSTRAP"))


@dataclass(frozen=True)
class DatabaseDescriptor:
    """One entry of the configuration's ``databases`` mapping."""
    name: str
    server_urls: Tuple[str, ...]
    username: str
    password: str
    bucket: Optional[str] = None

    @property
    def primary_url(self) -> str:
        """The server polled for readiness; the remaining URLs are not checked."""
        return self.server_urls[0]


def read_document(document_path: str) -> str:
    if not os.path.isfile(document_path):
        raise ConfigFileNotFound(f"Configuration document not found: {document_path}")
    try:
        with open(document_path, 'r') as f:
            return f.read()
    except PermissionError as e:
        raise ConfigFileNotFound(f"Configuration document not readable: {document_path}: {e}")


def write_document(document_path: str, content: str) -> None:
    """
    Replace the document's content, keeping its owner, group and mode.

    A symlinked path is resolved first; the link stays in place and its
    target is rewritten.
    """
    target = os.path.realpath(document_path)
    directory = os.path.dirname(target)
    if not os.access(target, os.W_OK):
        raise ConfigFileNotWritable(f"Configuration document not writable: {document_path}")

    original = os.stat(target)
    try:
        fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".sgboot-", suffix=".tmp")
    except OSError as e:
        raise ConfigFileNotWritable(f"Cannot create temporary file next to {target}: {e}")

    try:
        with os.fdopen(fd, 'w') as f:
            f.write(content)
        os.chown(tmp_path, original.st_uid, original.st_gid)
        os.chmod(tmp_path, stat.S_IMODE(original.st_mode))
        os.replace(tmp_path, target)
    except OSError as e:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        raise ConfigFileNotWritable(f"Failed to rewrite {document_path}: {e}")


def substitute(document_path: str,
               directive: PlaceholderDirective,
               resolved_value: str,
               structured_logger: Optional[StructuredEventLogger] = None) -> int:
    """
    Replace every occurrence of ``directive.name`` in the document with ``resolved_value``.

    The file is rewritten in place. A placeholder that does not occur in the
    document is not an error; the file is left untouched.

    Args:
        document_path (str): Path of the configuration document.
        directive (PlaceholderDirective): Directive whose token is replaced.
        resolved_value (str): Replacement text.
        structured_logger (StructuredEventLogger, optional): Logger for structured events.

    Returns:
        int: Number of occurrences replaced.

    Raises:
        ConfigFileNotFound: If the document does not exist or cannot be read.
        ConfigFileNotWritable: If the document cannot be rewritten.
    """
    start_time = time.time()
    content = read_document(document_path)
    occurrences = content.count(directive.name)

    if occurrences == 0:
        logger.info(f"Placeholder {directive.name} not found in {document_path}, nothing to replace")
    else:
        write_document(document_path, content.replace(directive.name, resolved_value))
        logger.info(f"Replaced {occurrences} occurrence(s) of {directive.name} in {document_path}")

    if structured_logger:
        structured_logger.log_placeholder_resolution(
            placeholder=directive.name,
            kind=directive.kind.value,
            document_path=document_path,
            replacements=occurrences,
            duration_ms=int((time.time() - start_time) * 1000)
        )
    return occurrences


def load_databases(document_path: str) -> List[DatabaseDescriptor]:
    """
    Parse the resolved document and return its databases in document order.

    Entries without a ``server`` are skipped with a warning since there is
    no cluster to wait for. A missing or empty ``bucket`` means no bucket
    requirement.

    Raises:
        ConfigFileNotFound: If the document does not exist.
        ConfigDocumentInvalid: If it is not JSON, or ``databases`` is not a mapping.
    """
    content = read_document(document_path)
    try:
        document = json.loads(content)
    except json.JSONDecodeError as e:
        raise ConfigDocumentInvalid(f"Configuration document {document_path} is not valid JSON: {e}")

    if not isinstance(document, dict):
        raise ConfigDocumentInvalid(f"Configuration document {document_path} must be a JSON object")

    databases = document.get("databases", {})
    if not isinstance(databases, dict):
        raise ConfigDocumentInvalid(f"'databases' in {document_path} must be a mapping")

    descriptors = []
    for name, entry in databases.items():
        if not isinstance(entry, dict):
            raise ConfigDocumentInvalid(f"Database '{name}' in {document_path} must be an object")

        server = entry.get("server") or ""
        server_urls = tuple(url.strip() for url in server.split(",") if url.strip())
        if not server_urls:
            logger.warning(f"Database '{name}' has no server configured, skipping readiness check")
            continue

        descriptors.append(DatabaseDescriptor(
            name=name,
            server_urls=server_urls,
            username=entry.get("username") or "",
            password=entry.get("password") or "",
            bucket=entry.get("bucket") or None,
        ))

    logger.debug(f"Loaded {len(descriptors)} database(s) from {document_path}")
    return descriptors
