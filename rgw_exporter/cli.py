"""
Command line interface for the RGW usage exporter.
"""

import argparse
import logging
import os
import sys
from datetime import datetime

from rich.console import Console
from rich.table import Table

from .collector import SnapshotCollector
from .errors import ConfigError, ExporterError
from .logging_config import configure_logging
from .models import ExporterConfig
from .rgw_client import RGWAdminClient, expect_success
from .server import serve


logger = logging.getLogger(__name__)

console = Console()

BYTE_METRICS = ('capacity_bytes', 'bytes_sent_total', 'bytes_recv_total')


def format_bytes(b: float) -> str:
    """Format bytes to human readable."""
    if b is None:
        return "0 B"
    for unit in ['B', 'KB', 'MB', 'GB', 'TB', 'PB']:
        if abs(b) < 1024:
            return f"{b:.1f} {unit}"
        b /= 1024
    return f"{b:.1f} PB"


def parse_time(value: str) -> datetime:
    """Accept 'YYYY-MM-DD HH:MM:SS' or 'YYYY-MM-DD'."""
    for fmt in ("%Y-%m-%d %H:%M:%S", "%Y-%m-%d"):
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    raise argparse.ArgumentTypeError(f"invalid time {value!r}, expected 'YYYY-MM-DD[ HH:MM:SS]'")


def build_config(args) -> ExporterConfig:
    return ExporterConfig(
        endpoint=args.endpoint,
        access_key=args.ak or "",
        secret_key=args.sk or "",
        admin_prefix=args.prefix,
        listen_addr=getattr(args, 'addr', ExporterConfig.listen_addr),
        metrics_path=getattr(args, 'path', ExporterConfig.metrics_path),
        timeout=args.timeout,
        log_level=args.log_level,
        log_json=args.log_json,
    )


def cmd_serve(config: ExporterConfig, args) -> int:
    """Serve metrics until interrupted."""
    serve(config)
    return 0


def cmd_collect(config: ExporterConfig, args) -> int:
    """Run one poll cycle and print the samples."""
    collector = SnapshotCollector(RGWAdminClient.from_config(config))
    try:
        snapshot = collector.poll()
    finally:
        collector.close()

    if snapshot is None:
        stats = collector.state.get_stats()
        console.print(f"[red]Poll cycle failed:[/red] {stats['last_error']}")
        return 1

    table = Table(title=f"Radosgw samples ({len(snapshot)})")
    table.add_column("Metric", style="cyan")
    table.add_column("User", style="blue")
    table.add_column("Bucket", style="blue", max_width=40)
    table.add_column("API", style="magenta")
    table.add_column("Value", justify="right", style="green")

    for sample in snapshot.samples:
        labels = dict(sample.labels)
        value = f"{int(sample.value):,}"
        if sample.metric.endswith(BYTE_METRICS):
            value = f"{value} ({format_bytes(sample.value)})"
        table.add_row(sample.metric, labels.get('user', ''), labels.get('bucket', ''),
                      labels.get('api', '-'), value)

    console.print(table)
    return 0


def cmd_query(config: ExporterConfig, args) -> int:
    """Print the raw JSON of one read-only admin call."""
    with RGWAdminClient.from_config(config) as client:
        if args.type == 'bucket':
            response = client.get_bucket(bucket=args.bucket or "", uid=args.uid or "",
                                         stats=not args.no_stats)
        elif args.type == 'usage':
            response = client.get_usage(uid=args.uid or "", start=args.start, end=args.end,
                                        show_entries=True, show_summary=args.summary)
        elif args.type == 'user':
            response = client.get_user(args.uid or "")
        elif args.type == 'quota':
            response = client.get_quota(args.uid or "", args.quota_type)
        else:
            response = client.get_policy(args.bucket or "", args.object or "")

    body = expect_success(response, args.type)
    text = body.decode("utf-8", errors="replace")
    try:
        console.print_json(text)
    except ValueError:
        console.print(text, markup=False)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Radosgw usage exporter for Prometheus',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Serve metrics on 127.0.0.1:9129/metrics
  %(prog)s --ak AK --sk SK --endpoint 10.0.0.5:8080 serve

  # One poll cycle, printed as a table
  %(prog)s --ak AK --sk SK collect

  # Raw admin API output
  %(prog)s query --type usage --uid alice --start 2024-01-01
  %(prog)s query --type quota --uid alice --quota-type bucket

Access and secret key default to $RGW_ACCESS_KEY and $RGW_SECRET_KEY.
        """
    )

    parser.add_argument('--endpoint', default='127.0.0.1:8080',
                        help='Endpoint of the radosgw service (default: 127.0.0.1:8080)')
    parser.add_argument('--ak', default=os.environ.get('RGW_ACCESS_KEY'),
                        help='Access key of the radosgw admin user')
    parser.add_argument('--sk', default=os.environ.get('RGW_SECRET_KEY'),
                        help='Secret key of the radosgw admin user')
    parser.add_argument('--prefix', default='/admin',
                        help='Admin API path prefix (default: /admin)')
    parser.add_argument('--timeout', type=float, default=300,
                        help='Upstream request timeout seconds (default: 300)')
    parser.add_argument('--log-level', default=os.environ.get('LOG_LEVEL', 'INFO'),
                        help='Log level (default: INFO)')
    parser.add_argument('--log-json', action='store_true',
                        help='Log JSON lines instead of text')

    subparsers = parser.add_subparsers(dest='command', help='Command')

    # Serve
    serve_p = subparsers.add_parser('serve', help='Serve Prometheus metrics')
    serve_p.add_argument('--addr', default='127.0.0.1:9129',
                         help='Listen address (default: 127.0.0.1:9129)')
    serve_p.add_argument('--path', default='/metrics',
                         help='URL path of the metrics (default: /metrics)')
    serve_p.set_defaults(func=cmd_serve)

    # Collect
    collect_p = subparsers.add_parser('collect', help='Run one poll cycle and print samples')
    collect_p.set_defaults(func=cmd_collect)

    # Query
    query_p = subparsers.add_parser('query', help='Raw read-only admin API call')
    query_p.add_argument('--type', required=True,
                         choices=['bucket', 'usage', 'user', 'quota', 'policy'],
                         help='Admin resource')
    query_p.add_argument('--uid', help='User id')
    query_p.add_argument('--bucket', help='Bucket name')
    query_p.add_argument('--object', help='Object name for --type policy')
    query_p.add_argument('--no-stats', action='store_true',
                         help='Bucket names only for --type bucket')
    query_p.add_argument('--quota-type', default='user', choices=['user', 'bucket'],
                         help='Quota type for --type quota (default: user)')
    query_p.add_argument('--start', type=parse_time, help='Usage range start')
    query_p.add_argument('--end', type=parse_time, help='Usage range end (exclusive)')
    query_p.add_argument('--summary', action='store_true',
                         help='Include the usage summary')
    query_p.set_defaults(func=cmd_query)

    return parser


def main(argv=None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        config = build_config(args)
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    configure_logging(config.log_level, config.log_json)

    try:
        return args.func(config, args)
    except (ExporterError, ValueError) as e:
        console.print(f"[red]ERROR:[/red] {e}")
        return 1


if __name__ == '__main__':
    sys.exit(main())
