"""
Couchbase cluster administration queries.

Answers the three questions the readiness gate asks of a cluster through the
Couchbase Server REST API:

    GET /pools/default                      initialized?
    GET /pools/default/rebalanceProgress    rebalancing?
    GET /pools/default/buckets/<bucket>     bucket exists?

A negative answer is returned as False. Anything the API was not expected to
say (network errors, unexpected status codes, unparsable bodies) is raised as
ClusterUnreachable, which the readiness scheduler treats as "not ready yet".
"""

import os
import logging
from urllib.parse import quote
import requests
from .errors import ClusterUnreachable

logger = logging.getLogger(os.getenv("LOGGER_NAME", "SYNC_GATEWAY_BOOTSTRAP"))

DEFAULT_REQUEST_TIMEOUT = 10  # seconds

# Status codes an uninitialized cluster answers /pools/default with.
# Before initialization no admin user exists, so credentials are rejected.
UNINITIALIZED_STATUS_CODES = [401, 404]
# rebalanceProgress reports {"status": "none"} when idle and "running" during a rebalance
REBALANCE_RUNNING_STATUS = "running"


class CouchbaseAdminClient:
    """
    Thin REST client for cluster status queries.

    Attributes:
        timeout (int): Per-request timeout in seconds.
        session (requests.Session): Shared HTTP session.
    """

    def __init__(self, timeout: int = DEFAULT_REQUEST_TIMEOUT, session: requests.Session | None = None):
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": "sync-gateway-bootstrap/1.0"})

    def _get(self, cluster_url: str, path: str, username: str, password: str) -> requests.Response:
        url = f"{cluster_url.rstrip('/')}{path}"
        try:
            return self.session.get(url, auth=(username, password), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.debug(f"Request to {url} failed: {e}")
            raise ClusterUnreachable(cluster_url, str(e))

    def is_initialized(self, cluster_url: str, username: str, password: str) -> bool:
        """True once the cluster has been initialized and accepts the admin credentials."""
        resp = self._get(cluster_url, "/pools/default", username, password)
        if resp.status_code == 200:
            return True
        if resp.status_code in UNINITIALIZED_STATUS_CODES:
            logger.debug(f"Cluster at {cluster_url} not initialized (HTTP {resp.status_code})")
            return False
        raise ClusterUnreachable(cluster_url, f"unexpected HTTP {resp.status_code} from /pools/default")

    def is_rebalancing(self, cluster_url: str, username: str, password: str) -> bool:
        """True while a rebalance is running."""
        resp = self._get(cluster_url, "/pools/default/rebalanceProgress", username, password)
        if resp.status_code != 200:
            raise ClusterUnreachable(cluster_url, f"unexpected HTTP {resp.status_code} from rebalanceProgress")
        try:
            status = resp.json().get("status")
        except (ValueError, AttributeError) as e:
            raise ClusterUnreachable(cluster_url, f"unparsable rebalanceProgress response: {e}")
        if status is None:
            raise ClusterUnreachable(cluster_url, "rebalanceProgress response has no status")
        return status == REBALANCE_RUNNING_STATUS

    def has_bucket(self, cluster_url: str, username: str, password: str, bucket: str) -> bool:
        """True if ``bucket`` exists on the cluster."""
        if not bucket:
            raise ValueError("bucket cannot be empty")
        resp = self._get(cluster_url, f"/pools/default/buckets/{quote(bucket, safe='')}", username, password)
        if resp.status_code == 200:
            return True
        if resp.status_code == 404:
            return False
        raise ClusterUnreachable(cluster_url, f"unexpected HTTP {resp.status_code} looking up bucket {bucket}")
