"""
Sync Gateway Bootstrap Orchestration

Runs the bootstrap stages in a fixed order:

    REWRITING_POINTER      point the systemd unit at the configuration document
    RESOLVING_ASG          replace --auto-fill-asg placeholders with ASG member URLs
    RESOLVING_LITERAL      replace --auto-fill placeholders with literal values
    WAITING_FOR_CLUSTERS   block until every database's cluster is ready
      (or SKIPPING_WAIT    with --skip-wait)
    STARTING               enable and start the service
    DONE

Every stage is fail-fast: an exception moves the run to FAILED and is re-raised
to the caller. Substitutions already written are not rolled back, so a failed
run may leave the document partially resolved for the operator to inspect.

Directives are applied in the order given, ASG directives before literal ones,
each operating on the document as rewritten by the previous one.
"""

import os
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, List, Optional, Tuple
from .aws import build_aws_clients, build_cluster_url, get_instance_region, list_hostnames, wait_for_instances_in_asg
from .config import Config
from .couchbase import CouchbaseAdminClient
from .directives import PlaceholderDirective
from .readiness import wait_for_databases
from .structured_events import StructuredEventLogger, ActionResult
from .supervisor import SystemdSupervisor
from .template import load_databases, substitute

logger = logging.getLogger(os.getenv("LOGGER_NAME", "SYNC_GATEWAY_BOOTSTRAP"))


class BootstrapStage(Enum):
    PENDING = "pending"
    REWRITING_POINTER = "rewriting_pointer"
    RESOLVING_ASG = "resolving_asg"
    RESOLVING_LITERAL = "resolving_literal"
    SKIPPING_WAIT = "skipping_wait"
    WAITING_FOR_CLUSTERS = "waiting_for_clusters"
    STARTING = "starting"
    DONE = "done"
    FAILED = "failed"


@dataclass
class BootstrapOptions:
    """Per-run inputs, normally built from the command line."""
    config_path: str
    asg_directives: List[PlaceholderDirective] = field(default_factory=list)
    literal_directives: List[PlaceholderDirective] = field(default_factory=list)
    use_public_hostname: bool = False
    skip_wait: bool = False
    max_attempts: Optional[int] = None
    interval_seconds: Optional[float] = None


class Bootstrap:
    """
    One bootstrap run.

    Collaborators are injected so tests can replace systemd, AWS and Couchbase.
    AWS clients and the region are only looked up when ASG directives exist.

    Attributes:
        stage (BootstrapStage): Current stage; FAILED after an exception.
    """

    def __init__(self,
                 options: BootstrapOptions,
                 cfg: Config,
                 supervisor: SystemdSupervisor,
                 admin: Optional[CouchbaseAdminClient] = None,
                 aws_clients: Optional[Tuple[object, object]] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 structured_logger: Optional[StructuredEventLogger] = None):
        self.options = options
        self.cfg = cfg
        self.supervisor = supervisor
        self.admin = admin
        self.aws_clients = aws_clients
        self.sleep = sleep
        self.structured_logger = structured_logger
        self.stage = BootstrapStage.PENDING

    def _enter(self, stage: BootstrapStage) -> None:
        self.stage = stage
        logger.info(f"Bootstrap stage: {stage.value}")
        if self.structured_logger:
            self.structured_logger.log_lifecycle(stage.value, ActionResult.SUCCESS)

    def _region(self) -> str:
        if not self.cfg.aws_region:
            self.cfg.aws_region = get_instance_region(timeout=self.cfg.metadata_timeout)
        return self.cfg.aws_region

    def _clients(self) -> Tuple[object, object]:
        if self.aws_clients is None:
            self.aws_clients = build_aws_clients(self._region())
        return self.aws_clients

    def resolve_asg_directive(self, directive: PlaceholderDirective) -> int:
        """Discover the ASG's hostnames and substitute them as a cluster URL list."""
        region = self._region()
        autoscaling, ec2 = self._clients()

        if self.cfg.asg_wait_for_capacity:
            wait_for_instances_in_asg(directive.asg_name, region, autoscaling, ec2,
                                      max_attempts=self.cfg.asg_max_attempts,
                                      interval=self.cfg.asg_interval,
                                      sleep=self.sleep)

        hostnames = list_hostnames(directive.asg_name, region,
                                   use_public=self.options.use_public_hostname,
                                   port=directive.port,
                                   ec2=ec2,
                                   structured_logger=self.structured_logger)
        return substitute(self.options.config_path, directive, build_cluster_url(hostnames),
                          structured_logger=self.structured_logger)

    def resolve_literal_directive(self, directive: PlaceholderDirective) -> int:
        return substitute(self.options.config_path, directive, directive.value,
                          structured_logger=self.structured_logger)

    def wait_for_clusters(self) -> int:
        """Block until every database in the resolved document is ready."""
        if self.admin is None:
            self.admin = CouchbaseAdminClient(timeout=self.cfg.couchbase_api_timeout)

        max_attempts = self.options.max_attempts or self.cfg.readiness_max_attempts
        interval = self.options.interval_seconds
        if interval is None:
            interval = self.cfg.readiness_interval

        descriptors = load_databases(self.options.config_path)
        if not descriptors:
            logger.warning(f"No databases with a server found in {self.options.config_path}, nothing to wait for")
            return 0
        return wait_for_databases(descriptors, self.admin,
                                  max_attempts=max_attempts,
                                  interval_seconds=interval,
                                  sleep=self.sleep,
                                  structured_logger=self.structured_logger)

    def run(self) -> BootstrapStage:
        """
        Execute all stages.

        Returns:
            BootstrapStage: DONE on success.

        Raises:
            BootstrapError: Or any collaborator exception; the stage is FAILED.
        """
        start_time = time.time()
        try:
            self._enter(BootstrapStage.REWRITING_POINTER)
            self.supervisor.set_config_path(self.options.config_path)

            self._enter(BootstrapStage.RESOLVING_ASG)
            for directive in self.options.asg_directives:
                self.resolve_asg_directive(directive)

            self._enter(BootstrapStage.RESOLVING_LITERAL)
            for directive in self.options.literal_directives:
                self.resolve_literal_directive(directive)

            if self.options.skip_wait:
                self._enter(BootstrapStage.SKIPPING_WAIT)
                logger.info("--skip-wait set, not waiting for Couchbase clusters")
            else:
                self._enter(BootstrapStage.WAITING_FOR_CLUSTERS)
                self.wait_for_clusters()

            self._enter(BootstrapStage.STARTING)
            self.supervisor.start()

            self.stage = BootstrapStage.DONE
            duration_ms = int((time.time() - start_time) * 1000)
            logger.info(f"Bootstrap completed in {duration_ms}ms")
            if self.structured_logger:
                self.structured_logger.log_lifecycle(BootstrapStage.DONE.value, ActionResult.SUCCESS,
                                                     duration_ms=duration_ms)
            return self.stage

        except Exception as e:
            failed_stage = self.stage
            self.stage = BootstrapStage.FAILED
            logger.error(f"Bootstrap failed during {failed_stage.value}: {e}")
            if self.structured_logger:
                self.structured_logger.log_lifecycle(
                    BootstrapStage.FAILED.value, ActionResult.FAILURE,
                    details={"failed_stage": failed_stage.value},
                    duration_ms=int((time.time() - start_time) * 1000),
                    error_message=str(e)
                )
            raise


def run_bootstrap(options: BootstrapOptions, cfg: Config, **collaborators) -> BootstrapStage:
    """
    Build the systemd supervisor from ``cfg`` unless one is supplied, then run.
    """
    supervisor = collaborators.pop("supervisor", None) or SystemdSupervisor(cfg.service_name, cfg.unit_file)
    return Bootstrap(options, cfg, supervisor, **collaborators).run()
