import os
from dataclasses import dataclass
from dotenv import load_dotenv

# Load environment variables from a .env file into the runtime environment
load_dotenv()

@dataclass
class Config:
    """
    Central configuration class that loads and stores all environment-defined
    parameters for the Sync Gateway bootstrap.

    All fields are populated from environment variables and type-cast as needed.
    Command-line flags take precedence over these values where both exist.

    Attributes:
        Logging:
            - logger_name: Name the bootstrap logger will log as.
            - log_level: Log verbosity (e.g., DEBUG, INFO, WARNING).
            - log_file: Path to optional log file.
            - log_max_bytes: Log file size before rotation.
            - log_backup_count: Number of rotated backups to retain.
            - enable_structured_console: Output JSON to console for structured events.
            - enable_structured_file: Output JSON to separate structured log file.
            - structured_log_file: Path to structured JSON log file.

        AWS:
            - aws_region: Region of the Auto Scaling Groups. When unset, the
              region is read from the EC2 instance metadata service.
            - metadata_timeout: Timeout for instance metadata requests.
            - asg_wait_for_capacity: Wait for each ASG to reach its desired
              capacity before listing hostnames.
            - asg_max_attempts / asg_interval: Polling budget for that wait.

        Sync Gateway:
            - sync_gateway_config: Default path of the configuration document.
            - service_name: systemd unit name of the Sync Gateway service.
            - unit_file: Path of the unit file holding the CONFIG= pointer.

        Cluster readiness:
            - readiness_max_attempts: Poll attempts per database before giving up.
            - readiness_interval: Seconds between poll attempts.
            - couchbase_api_timeout: Timeout for each Couchbase REST request.
    """
    # Logging
    logger_name: str = os.getenv('LOGGER_NAME', 'SYNC_GATEWAY_BOOTSTRAP').upper()
    log_level: str = os.getenv('LOG_LEVEL', 'INFO').upper()
    log_file: str | None = os.getenv('LOG_FILE', '/var/log/sync_gateway_bootstrap.log')
    log_max_bytes: int = int(os.getenv('LOG_MAX_BYTES', 10 * 1024 * 1024))
    log_backup_count: int = int(os.getenv('LOG_BACKUP_COUNT', 5))
    enable_structured_console: bool = os.getenv('ENABLE_STRUCTURED_CONSOLE', 'false').lower() == 'true'
    enable_structured_file: bool = os.getenv('ENABLE_STRUCTURED_FILE', 'false').lower() == 'true'
    structured_log_file: str | None = os.getenv('STRUCTURED_LOG_FILE', '/var/log/sync_gateway_bootstrap_structured.json')

    # AWS discovery
    aws_region: str | None = os.getenv('AWS_REGION')
    metadata_timeout: int = int(os.getenv('METADATA_TIMEOUT', 5))
    asg_wait_for_capacity: bool = os.getenv('ASG_WAIT_FOR_CAPACITY', 'true').lower() == 'true'
    asg_max_attempts: int = int(os.getenv('ASG_MAX_ATTEMPTS', 60))
    asg_interval: float = float(os.getenv('ASG_INTERVAL_SECONDS', 5))

    # Sync Gateway service
    sync_gateway_config: str = os.getenv('SYNC_GATEWAY_CONFIG', '/home/sync_gateway/sync_gateway.json')
    service_name: str = os.getenv('SYNC_GATEWAY_SERVICE', 'sync_gateway')
    unit_file: str = os.getenv('SYNC_GATEWAY_UNIT_FILE', '/lib/systemd/system/sync_gateway.service')

    # Cluster readiness polling
    readiness_max_attempts: int = int(os.getenv('READINESS_MAX_ATTEMPTS', 200))
    readiness_interval: float = float(os.getenv('READINESS_INTERVAL_SECONDS', 5))
    couchbase_api_timeout: int = int(os.getenv('COUCHBASE_API_TIMEOUT', 10))


def validate_configuration(cfg: Config) -> list[str]:
    """
    Validates the loaded configuration for correctness and consistency.

    This includes:
    - Validating numeric ranges of environment-provided numbers.
    - Verifying the systemd unit file exists.

    The configuration document itself is not checked here; a missing document
    surfaces as ConfigFileNotFound from the first substitution.

    Args:
        cfg (Config): Parsed and populated configuration object.

    Returns:
        list[str]: A list of human-readable error strings. Empty list means validation passed.
    """
    errors: list[str] = []

    numeric_ranges = {
        'READINESS_MAX_ATTEMPTS': (1, 10000),
        'READINESS_INTERVAL_SECONDS': (0, 3600),
        'ASG_MAX_ATTEMPTS': (1, 10000),
        'ASG_INTERVAL_SECONDS': (0, 3600),
        'COUCHBASE_API_TIMEOUT': (1, 300),
        'METADATA_TIMEOUT': (1, 60),
        'LOG_MAX_BYTES': (1024, 1073741824),  # 1 KB to 1 GB
        'LOG_BACKUP_COUNT': (1, 100),
    }

    for var, (mn, mx) in numeric_ranges.items():
        raw = os.getenv(var)
        if raw:
            try:
                val = float(raw)
                if val < mn or val > mx:
                    errors.append(f"{var} must be between {mn} and {mx}, got {val}")
            except ValueError:
                errors.append(f"{var} must be numeric, got '{raw}'")

    if not cfg.service_name:
        errors.append("SYNC_GATEWAY_SERVICE cannot be empty")

    if cfg.unit_file and not os.path.isfile(cfg.unit_file):
        errors.append(f"systemd unit file not found: {cfg.unit_file}")

    return errors
