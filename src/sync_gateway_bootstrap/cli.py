import argparse
from .config import Config
from .directives import parse_assignment, parse_asg_assignment
from .errors import MalformedDirective
from .bootstrap import BootstrapOptions

DESCRIPTION = ("Resolve placeholders in the Sync Gateway configuration, wait for the "
               "Couchbase clusters it references to be ready, then start Sync Gateway.")

EPILOG = """example:
  python -m sync_gateway_bootstrap \\
    --auto-fill-asg "<SERVERS>=couchbase-server:8091" \\
    --auto-fill "<BUCKET_NAME>=travel" \\
    --auto-fill "<DB_USERNAME>=admin" \\
    --auto-fill "<DB_PASSWORD>=secret"
"""


def _directive_type(parser_func):
    def _parse(raw):
        try:
            return parser_func(raw)
        except MalformedDirective as e:
            raise argparse.ArgumentTypeError(str(e))
    _parse.__name__ = parser_func.__name__
    return _parse


def _positive_int(raw):
    try:
        value = int(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"'{raw}' is not an integer")
    if value < 1:
        raise argparse.ArgumentTypeError(f"must be >= 1, got {value}")
    return value


def _non_negative_float(raw):
    try:
        value = float(raw)
    except ValueError:
        raise argparse.ArgumentTypeError(f"'{raw}' is not a number")
    if value < 0:
        raise argparse.ArgumentTypeError(f"must be >= 0, got {value}")
    return value


def build_parser(cfg: Config) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="sync-gateway-bootstrap",
        description=DESCRIPTION,
        epilog=EPILOG,
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        '--auto-fill-asg',
        metavar='KEY=ASG_NAME[:PORT]',
        dest='asg_directives',
        action='append',
        default=[],
        type=_directive_type(parse_asg_assignment),
        help='Replace KEY in the config with the comma-separated http:// URLs of the '
             'instances in ASG_NAME, with :PORT appended when given. Repeatable.'
    )
    parser.add_argument(
        '--auto-fill',
        metavar='KEY=VALUE',
        dest='literal_directives',
        action='append',
        default=[],
        type=_directive_type(parse_assignment),
        help='Replace KEY in the config with VALUE. Repeatable.'
    )
    parser.add_argument(
        '--use-public-hostname',
        action='store_true',
        help='Use the public instead of the private hostnames of ASG instances.'
    )
    parser.add_argument(
        '--config',
        metavar='PATH',
        dest='config_path',
        default=cfg.sync_gateway_config,
        help=f'Path of the Sync Gateway config file (default: {cfg.sync_gateway_config}).'
    )
    parser.add_argument(
        '--skip-wait',
        action='store_true',
        help='Start Sync Gateway without waiting for the Couchbase clusters to be ready.'
    )
    parser.add_argument(
        '--max-attempts',
        type=_positive_int,
        default=None,
        help=f'Readiness checks per database before failing (default: {cfg.readiness_max_attempts}).'
    )
    parser.add_argument(
        '--interval',
        metavar='SECONDS',
        dest='interval_seconds',
        type=_non_negative_float,
        default=None,
        help=f'Seconds between readiness checks (default: {cfg.readiness_interval}).'
    )
    return parser


def parse_args(argv, cfg: Config) -> BootstrapOptions:
    """
    Parse command-line arguments into BootstrapOptions.

    Unrecognized or malformed input prints usage and exits with status 2.
    """
    args = build_parser(cfg).parse_args(argv)
    return BootstrapOptions(
        config_path=args.config_path,
        asg_directives=args.asg_directives,
        literal_directives=args.literal_directives,
        use_public_hostname=args.use_public_hostname,
        skip_wait=args.skip_wait,
        max_attempts=args.max_attempts,
        interval_seconds=args.interval_seconds,
    )
