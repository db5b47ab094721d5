"""
Cluster Readiness Gate

Sync Gateway refuses to serve a database whose Couchbase cluster is still
booting, so the bootstrap holds the service back until every configured
cluster is ready. A cluster is ready when, checked in this order:

    1. it has been initialized,
    2. it is not rebalancing,
    3. the configured bucket exists (skipped when no bucket is configured).

The first unmet condition decides the ReadinessState; later conditions are
not queried.

Polling:
    wait_until_ready() polls one database at a fixed interval with a bounded
    number of attempts. Transport failures (ClusterUnreachable) count as
    "not ready yet" and are retried like any other unmet condition. Running
    out of attempts raises ReadinessTimeout, which aborts the bootstrap.

    wait_for_databases() walks the databases sequentially in document order,
    so the worst-case wait is the sum of the per-database budgets. The first
    timeout stops the walk; later databases are never checked.
"""

import os
import logging
import time
from enum import Enum
from typing import Callable, Iterable, Optional
from .couchbase import CouchbaseAdminClient
from .errors import ClusterUnreachable, ReadinessTimeout
from .structured_events import StructuredEventLogger
from .template import DatabaseDescriptor

logger = logging.getLogger(os.getenv("LOGGER_NAME", "SYNC_GATEWAY_BOOTSTRAP"))

DEFAULT_MAX_ATTEMPTS = 200
DEFAULT_INTERVAL_SECONDS = 5


class ReadinessState(Enum):
    UNCHECKED = "unchecked"
    INITIALIZING = "initializing"
    REBALANCING = "rebalancing"
    BUCKET_MISSING = "bucket_missing"
    UNREACHABLE = "unreachable"
    READY = "ready"
    FAILED = "failed"


# Operator-facing description of each unmet condition
STATE_REASONS = {
    ReadinessState.UNCHECKED: "has not been checked",
    ReadinessState.INITIALIZING: "is not initialized yet",
    ReadinessState.REBALANCING: "is currently rebalancing",
    ReadinessState.BUCKET_MISSING: "does not have the bucket yet",
    ReadinessState.UNREACHABLE: "is unreachable",
    ReadinessState.FAILED: "did not become ready",
}


def check_ready(descriptor: DatabaseDescriptor, admin: CouchbaseAdminClient) -> ReadinessState:
    """
    Evaluate one database's cluster against the ordered readiness conditions.

    Only the first server URL is queried.

    Raises:
        ClusterUnreachable: If an admin query fails unexpectedly.
    """
    url = descriptor.primary_url
    if not admin.is_initialized(url, descriptor.username, descriptor.password):
        return ReadinessState.INITIALIZING
    if admin.is_rebalancing(url, descriptor.username, descriptor.password):
        return ReadinessState.REBALANCING
    if not descriptor.bucket:
        return ReadinessState.READY
    if not admin.has_bucket(url, descriptor.username, descriptor.password, descriptor.bucket):
        return ReadinessState.BUCKET_MISSING
    return ReadinessState.READY


def wait_until_ready(descriptor: DatabaseDescriptor,
                     admin: CouchbaseAdminClient,
                     max_attempts: int = DEFAULT_MAX_ATTEMPTS,
                     interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
                     checker: Callable[[DatabaseDescriptor, CouchbaseAdminClient], ReadinessState] = check_ready,
                     sleep: Callable[[float], None] = time.sleep,
                     structured_logger: Optional[StructuredEventLogger] = None) -> int:
    """
    Poll ``checker`` until the database's cluster is READY.

    Args:
        descriptor (DatabaseDescriptor): Database to wait for.
        admin (CouchbaseAdminClient): Cluster administration client.
        max_attempts (int): Checks performed before giving up.
        interval_seconds (float): Sleep between checks. There is no sleep after
            the final failed check.
        checker: Readiness evaluation, replaceable in tests.
        sleep: Sleep function, replaceable in tests.
        structured_logger (StructuredEventLogger, optional): Logger for structured events.

    Returns:
        int: Number of checks it took to reach READY.

    Raises:
        ReadinessTimeout: After ``max_attempts`` checks without READY.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    if interval_seconds < 0:
        raise ValueError("interval_seconds must be >= 0")

    state = ReadinessState.UNCHECKED
    logger.info(f"Waiting for Couchbase cluster at {descriptor.primary_url} "
                f"(database '{descriptor.name}') to be ready")

    for attempt in range(1, max_attempts + 1):
        start_time = time.time()
        error_message = None
        try:
            state = checker(descriptor, admin)
        except ClusterUnreachable as e:
            state = ReadinessState.UNREACHABLE
            error_message = e.reason

        if structured_logger:
            structured_logger.log_readiness_check(
                database=descriptor.name,
                server_url=descriptor.primary_url,
                state=state.value,
                attempt=attempt,
                max_attempts=max_attempts,
                duration_ms=int((time.time() - start_time) * 1000),
                error_message=error_message
            )

        if state == ReadinessState.READY:
            logger.info(f"Couchbase cluster at {descriptor.primary_url} is ready "
                        f"for database '{descriptor.name}' (attempt {attempt}/{max_attempts})")
            return attempt

        reason = STATE_REASONS[state]
        if state == ReadinessState.BUCKET_MISSING:
            reason = f"does not have bucket '{descriptor.bucket}' yet"
        detail = f": {error_message}" if error_message else ""
        logger.info(f"Couchbase cluster at {descriptor.primary_url} {reason}{detail} "
                    f"(attempt {attempt}/{max_attempts})")

        if attempt < max_attempts:
            logger.debug(f"Sleeping {interval_seconds}s before next readiness check")
            sleep(interval_seconds)

    last_state = state
    state = ReadinessState.FAILED
    logger.error(f"Couchbase cluster at {descriptor.primary_url} still not ready for database "
                 f"'{descriptor.name}' after {max_attempts} attempts (last state: {last_state.value})")
    if structured_logger:
        structured_logger.log_readiness_check(
            database=descriptor.name,
            server_url=descriptor.primary_url,
            state=state.value,
            attempt=max_attempts,
            max_attempts=max_attempts,
            error_message=f"not ready after {max_attempts} attempts, last state {last_state.value}"
        )
    raise ReadinessTimeout(descriptor.name, max_attempts, last_state.value)


def wait_for_databases(descriptors: Iterable[DatabaseDescriptor],
                       admin: CouchbaseAdminClient,
                       max_attempts: int = DEFAULT_MAX_ATTEMPTS,
                       interval_seconds: float = DEFAULT_INTERVAL_SECONDS,
                       checker: Callable[[DatabaseDescriptor, CouchbaseAdminClient], ReadinessState] = check_ready,
                       sleep: Callable[[float], None] = time.sleep,
                       structured_logger: Optional[StructuredEventLogger] = None) -> int:
    """
    Wait for each database in turn. Returns how many databases were checked.

    Raises:
        ReadinessTimeout: From the first database that never became ready.
    """
    count = 0
    for descriptor in descriptors:
        wait_until_ready(descriptor, admin,
                         max_attempts=max_attempts,
                         interval_seconds=interval_seconds,
                         checker=checker,
                         sleep=sleep,
                         structured_logger=structured_logger)
        count += 1
    return count
