import sys, uuid
from .config import Config, validate_configuration
from .logging_setup import setup_logger
from .structured_events import StructuredEventLogger
from .bootstrap import run_bootstrap
from .cli import parse_args
from .errors import BootstrapError

def main(argv=None):

    cfg = Config()
    options = parse_args(sys.argv[1:] if argv is None else argv, cfg)

    logger = setup_logger(
        name=cfg.logger_name,
        level=cfg.log_level,
        log_file=cfg.log_file,
        max_bytes=cfg.log_max_bytes,
        backup_count=cfg.log_backup_count,
        enable_structured_console=cfg.enable_structured_console,
        enable_structured_file=cfg.enable_structured_file,
        structured_log_file=cfg.structured_log_file
    )
    structured_logger = StructuredEventLogger(cfg.logger_name)
    structured_logger.set_correlation_id(str(uuid.uuid4()))

    exit_code = 0
    try:
        errors = validate_configuration(cfg)
        if errors:
            logger.error("Configuration validation failed with the following errors:")
            for i, error in enumerate(errors, 1):
                logger.error(f"  {i}. {error}")
            exit_code = 1
        else:
            run_bootstrap(options, cfg, structured_logger=structured_logger)
    except BootstrapError as e:
        logger.critical(f"Bootstrap aborted: {e}")
        exit_code = 1
    except KeyboardInterrupt:
        logger.info("Received keyboard interrupt, aborting bootstrap...")
        exit_code = 130
    except Exception as e:
        logger.critical(f"Fatal error: {e}", exc_info=True)
        exit_code = 1
    finally:
        for h in logger.handlers:
            try:
                h.flush()
            except Exception:
                pass
        sys.exit(exit_code)

if __name__ == "__main__":
    main()
