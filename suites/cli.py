#!/usr/bin/env python3
# suites/cli.py
"""
Command line entry point for Stack Probes.
Runs one check suite against the observability stack and exits with the
suite's exit code, or serves the instrumented example API.
"""

import os
import sys
import argparse
from urllib.error import URLError

from observability.logging import configure_logging, suite_logger
from observability.metrics import metrics_registry, export_textfile, push_metrics
from .config import StackConfig, ConfigurationError
from .reporting import Console, NullConsole, print_json
from .startup import StartupCheck
from .service_health import ServiceHealthSuite
from .metrics import MetricsCollectionSuite
from .alerts import AlertConfigurationSuite
from .logs import LogAggregationSuite
from .restore import BackupRestoreSuite


def load_config(args, in_cluster: bool = False, **overrides) -> StackConfig:
    config = StackConfig.from_environment(in_cluster=in_cluster, env_file=args.env_file)
    return config.with_overrides(bundle_dir=args.bundle_dir, **overrides)


def make_console(args) -> Console:
    if args.json:
        return NullConsole()
    return Console(color=not args.no_color)


def export_run_metrics(args, suite_name: str):
    """Write or push the metrics of the finished run when asked to."""
    if args.metrics_file:
        export_textfile(args.metrics_file, metrics_registry)
    if args.pushgateway:
        try:
            push_metrics(args.pushgateway, registry=metrics_registry,
                         grouping_key={"suite": suite_name})
        except (URLError, OSError) as e:
            suite_logger.error(f"Pushgateway push failed: {e}", gateway=args.pushgateway)


def run_suite(args, suite) -> int:
    """Run a constructed suite and emit its report."""
    report = suite.run()
    if args.json:
        print_json(report.to_dict())
    export_run_metrics(args, suite.name)
    return report.exit_code


def cmd_startup(args):
    """Poll the core services, then run integration and notification checks."""
    config = load_config(args, in_cluster=True,
                         max_retries=args.max_retries,
                         retry_interval=args.retry_interval,
                         timeout=args.timeout)
    return run_suite(args, StartupCheck(config, console=make_console(args)))


def cmd_service_health(args):
    config = load_config(args)
    return run_suite(args, ServiceHealthSuite(config, console=make_console(args)))


def cmd_metrics(args):
    config = load_config(args)
    return run_suite(args, MetricsCollectionSuite(config, console=make_console(args)))


def cmd_alerts(args):
    config = load_config(args)
    return run_suite(args, AlertConfigurationSuite(config, console=make_console(args)))


def cmd_logs(args):
    config = load_config(args, log_ingest_wait=args.ingest_wait)
    suite = LogAggregationSuite(config, console=make_console(args),
                                check_containers=args.check_containers)
    return run_suite(args, suite)


def cmd_restore(args):
    config = load_config(args)
    return run_suite(args, BackupRestoreSuite(config, console=make_console(args)))


def cmd_example_api(args):
    """Serve the instrumented example API."""
    import uvicorn
    from example_api.app import create_app

    uvicorn.run(create_app(), host=args.host, port=args.port, log_config=None)
    return 0


COMMANDS = {
    'startup': cmd_startup,
    'service-health': cmd_service_health,
    'metrics': cmd_metrics,
    'alerts': cmd_alerts,
    'logs': cmd_logs,
    'restore': cmd_restore,
    'example-api': cmd_example_api,
}


def build_parser() -> argparse.ArgumentParser:
    # Options shared by every suite command
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('--env-file',
                        help='Load environment from this file (default: ./.env when present)')
    common.add_argument('--json', action='store_true',
                        help='Print the report as JSON instead of console output')
    common.add_argument('--no-color', action='store_true',
                        help='Disable ANSI colours')
    common.add_argument('--log-level',
                        default=os.environ.get('LOG_LEVEL', 'WARNING'),
                        help='Structured log level on stderr (default: LOG_LEVEL or WARNING)')
    common.add_argument('--metrics-file',
                        help='Write run metrics to a node-exporter textfile')
    common.add_argument('--pushgateway',
                        help='Push run metrics to this Pushgateway address')
    common.add_argument('--bundle-dir',
                        help='Directory holding the stack configuration bundle (default: BUNDLE_DIR or cwd)')

    parser = argparse.ArgumentParser(
        prog='stack-probes',
        description="Health and configuration checks for the observability stack",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s startup                          # Gate on core service health
  %(prog)s startup --max-retries 10         # Shorter retry budget
  %(prog)s service-health --bundle-dir .    # Validate scrape targets and dashboard
  %(prog)s logs --check-containers          # End-to-end log pipeline test
  %(prog)s restore --env-file qa/.env       # Validate a restored database
  %(prog)s example-api --port 9091          # Serve the demo API
        """
    )

    subparsers = parser.add_subparsers(dest='command', help='Available commands')

    startup_parser = subparsers.add_parser('startup', parents=[common],
                                           help='Startup check of all stack services')
    startup_parser.add_argument('--max-retries', type=int,
                                help='Attempts per core service (default: MAX_RETRIES or 30)')
    startup_parser.add_argument('--retry-interval', type=float,
                                help='Seconds between attempts (default: RETRY_INTERVAL or 2)')
    startup_parser.add_argument('--timeout', type=float,
                                help='Per-request timeout in seconds (default: TIMEOUT or 5)')

    subparsers.add_parser('service-health', parents=[common],
                          help='Service health recording rules, targets and dashboard')
    subparsers.add_parser('metrics', parents=[common], help='Metrics collection tests')
    subparsers.add_parser('alerts', parents=[common], help='Alert configuration tests')

    logs_parser = subparsers.add_parser('logs', parents=[common],
                                        help='Log aggregation pipeline test')
    logs_parser.add_argument('--check-containers', action='store_true',
                             help='Verify docker compose services are running first')
    logs_parser.add_argument('--ingest-wait', type=float,
                             help='Seconds to wait for log ingestion (default: LOG_INGEST_WAIT or 10)')

    subparsers.add_parser('restore', parents=[common], help='Backup & restore validation')

    api_parser = subparsers.add_parser('example-api', help='Serve the instrumented example API')
    api_parser.add_argument('--host', default='0.0.0.0', help='Bind address (default: 0.0.0.0)')
    api_parser.add_argument('--port', type=int, default=int(os.environ.get('PORT', 9091)),
                            help='Port (default: PORT or 9091)')

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    if getattr(args, 'log_level', None):
        try:
            configure_logging(args.log_level)
        except ValueError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 1

    try:
        return COMMANDS[args.command](args)
    except ConfigurationError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\nInterrupted.", file=sys.stderr)
        return 130


if __name__ == '__main__':
    sys.exit(main())
