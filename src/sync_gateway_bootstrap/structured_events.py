import logging
import time
from typing import Dict, Any, Optional, List
from enum import Enum
from dataclasses import dataclass, asdict

class EventType(Enum):
    """Standard event types for structured logging"""
    PLACEHOLDER_RESOLUTION = "placeholder_resolution"
    ASG_DISCOVERY = "asg_discovery"
    READINESS_CHECK = "readiness_check"
    BOOTSTRAP_LIFECYCLE = "bootstrap_lifecycle"

class ActionResult(Enum):
    """Standard action results"""
    SUCCESS = "success"
    FAILURE = "failure"
    NO_CHANGE = "no_change"
    SKIPPED = "skipped"

@dataclass
class StructuredEvent:
    """Base structure for all structured log events"""
    event_type: str
    timestamp: float
    result: str
    component: str
    operation: str
    details: Dict[str, Any]
    duration_ms: Optional[int] = None
    error_message: Optional[str] = None
    correlation_id: Optional[str] = None

class StructuredEventLogger:
    """Handles structured logging for bootstrap events"""

    def __init__(self, logger_name: str):
        self.logger = logging.getLogger(logger_name)
        self.correlation_id = None

    def set_correlation_id(self, correlation_id: str):
        """Set correlation ID for tracking all events of one bootstrap run"""
        self.correlation_id = correlation_id

    def log_event(self, event: StructuredEvent) -> None:
        """Log a structured event with consistent schema"""
        if not isinstance(event, StructuredEvent):
            raise TypeError(f"Event must be a StructuredEvent, got {type(event)}")

        if self.correlation_id:
            event.correlation_id = self.correlation_id
        log_data = {
            "structured_event": True,
            **asdict(event)
        }

        # Log at appropriate level based on result
        level = logging.INFO
        if event.result == ActionResult.FAILURE.value:
            level = logging.ERROR
        elif event.result == ActionResult.NO_CHANGE.value:
            level = logging.DEBUG

        message = f"{event.component}.{event.operation}: {event.result}"
        if event.error_message:
            message += f" - {event.error_message}"

        self.logger.log(level, message, extra={"json_fields": log_data})

    def log_placeholder_resolution(self,
                                   placeholder: str,
                                   kind: str,  # "literal" or "asg_reference"
                                   document_path: str,
                                   replacements: int,
                                   duration_ms: int = None) -> None:
        """Log one placeholder substitution into the configuration document"""
        result = ActionResult.SUCCESS if replacements else ActionResult.NO_CHANGE

        # Resolved values can carry credentials, so only the token is recorded
        event = StructuredEvent(
            event_type=EventType.PLACEHOLDER_RESOLUTION.value,
            timestamp=time.time(),
            result=result.value,
            component="template",
            operation=f"resolve_{kind}",
            details={
                "placeholder": placeholder,
                "document_path": document_path,
                "replacements": replacements
            },
            duration_ms=duration_ms
        )

        self.log_event(event)

    def log_asg_discovery(self,
                          asg_name: str,
                          region: str,
                          hostnames: List[str],
                          result: ActionResult,
                          duration_ms: int = None,
                          error_message: str = None) -> None:
        """Log the outcome of listing an Auto Scaling Group's hostnames"""

        event = StructuredEvent(
            event_type=EventType.ASG_DISCOVERY.value,
            timestamp=time.time(),
            result=result.value,
            component="aws",
            operation="list_hostnames",
            details={
                "asg_name": asg_name,
                "aws_region": region,
                "hostnames": list(hostnames),
                "instance_count": len(hostnames)
            },
            duration_ms=duration_ms,
            error_message=error_message
        )

        self.log_event(event)

    def log_readiness_check(self,
                            database: str,
                            server_url: str,
                            state: str,
                            attempt: int,
                            max_attempts: int,
                            duration_ms: int = None,
                            error_message: str = None) -> None:
        """Log a single readiness poll of a Couchbase cluster"""

        # Not-ready polls are expected while the cluster boots
        if state == "ready":
            result = ActionResult.SUCCESS
        elif state == "failed":
            result = ActionResult.FAILURE
        else:
            result = ActionResult.NO_CHANGE

        event = StructuredEvent(
            event_type=EventType.READINESS_CHECK.value,
            timestamp=time.time(),
            result=result.value,
            component="readiness",
            operation="check_ready",
            details={
                "database": database,
                "server_url": server_url,
                "state": state,
                "attempt": attempt,
                "max_attempts": max_attempts
            },
            duration_ms=duration_ms,
            error_message=error_message
        )

        self.log_event(event)

    def log_lifecycle(self,
                      stage: str,
                      result: ActionResult,
                      details: Dict[str, Any] = None,
                      duration_ms: int = None,
                      error_message: str = None) -> None:
        """Log bootstrap stage transitions"""

        event = StructuredEvent(
            event_type=EventType.BOOTSTRAP_LIFECYCLE.value,
            timestamp=time.time(),
            result=result.value,
            component="bootstrap",
            operation=stage,
            details=details or {},
            duration_ms=duration_ms,
            error_message=error_message
        )

        self.log_event(event)
