"""
Bootstrap error taxonomy.

Every fatal condition raised by the bootstrap derives from BootstrapError so
that __main__ can map them to a single non-zero exit status. ClusterUnreachable
is the one transient error: the readiness scheduler absorbs it and retries.
"""


class BootstrapError(Exception):
    """Base class for every error raised by the Sync Gateway bootstrap."""


class MalformedDirective(BootstrapError, ValueError):
    """An --auto-fill / --auto-fill-asg assignment could not be parsed."""

    def __init__(self, raw: str, reason: str):
        self.raw = raw
        self.reason = reason
        super().__init__(f"Malformed directive '{raw}': {reason}")


class EmptyDiscoveryResult(BootstrapError):
    """An Auto Scaling Group lookup produced no usable hostnames."""

    def __init__(self, asg_name: str, region: str, reason: str):
        self.asg_name = asg_name
        self.region = region
        self.reason = reason
        super().__init__(f"No usable hostnames for ASG '{asg_name}' in {region}: {reason}")


class ConfigFileNotFound(BootstrapError, FileNotFoundError):
    """A document the bootstrap must read or rewrite does not exist."""


class ConfigFileNotWritable(BootstrapError, PermissionError):
    """A document the bootstrap must rewrite cannot be written."""


class ConfigDocumentInvalid(BootstrapError, ValueError):
    """The resolved configuration document is not usable JSON."""


class ClusterUnreachable(BootstrapError):
    """A Couchbase admin query failed at the transport or protocol level."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Couchbase cluster at {url} unreachable: {reason}")


class ReadinessTimeout(BootstrapError):
    """A database's cluster never became ready within the attempt budget."""

    def __init__(self, database: str, attempts: int, last_state: str):
        self.database = database
        self.attempts = attempts
        self.last_state = last_state
        super().__init__(f"Cluster for database '{database}' not ready after {attempts} attempts "
                         f"(last state: {last_state})")


class SupervisorError(BootstrapError):
    """systemctl returned a failure."""
