"""
httpdouble Standalone Server CLI

Runs a mock server as its own process, managed through the admin API.

Examples:
    # Ephemeral port on localhost
    httpdouble

    # Fixed port, reachable from other hosts, with mocks from YAML files
    httpdouble --port 5000 --expose --static-mock-dir ./mocks

Defaults come from HTTPDOUBLE_* environment variables (HTTPDOUBLE_PORT,
HTTPDOUBLE_EXPOSE, HTTPDOUBLE_STATIC_MOCK_DIR, ...).
"""

import argparse
import logging
import sys
from typing import List, Optional

from httpdouble.mock import MockConfig, MockServer, HttpDoubleError, SelectionPolicy
from httpdouble.mock.server import LOG_LEVELS, parse_log_level


def build_parser(defaults: MockConfig) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog='httpdouble',
        description="httpdouble - standalone HTTP mock server driven over its admin API",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Start on port 5000 and record incoming requests
  %(prog)s --port 5000 --record

  # Load mocks from YAML files and accept remote connections
  %(prog)s --port 5000 --expose --static-mock-dir ./mocks
        """
    )
    parser.add_argument('--host', default=defaults.host,
                        help=f'Host to bind (default: {defaults.host})')
    parser.add_argument('-p', '--port', type=int, default=defaults.port,
                        help=f'Port to bind, 0 for an ephemeral port (default: {defaults.port})')
    parser.add_argument('--expose', action='store_true',
                        help='Bind 0.0.0.0 so other hosts can connect')
    parser.add_argument('--static-mock-dir', default=defaults.static_mock_dir,
                        help='Directory of *.yaml mock definitions to load at startup')
    parser.add_argument('--admin-prefix', default=defaults.admin_prefix,
                        help=f'Path prefix of the admin API (default: {defaults.admin_prefix})')
    parser.add_argument('--selection-policy', default=defaults.selection_policy,
                        choices=[policy.value for policy in SelectionPolicy],
                        help='Which mock wins when several match (default: %(default)s)')
    parser.add_argument('--record', action='store_true', default=defaults.recording_enabled,
                        help='Record incoming requests (see the admin recordings endpoint)')
    parser.add_argument('--record-limit', type=int, default=defaults.recording_limit,
                        help='Maximum requests to record (default: %(default)s, 0=unlimited)')
    parser.add_argument('--log-level', default=defaults.log_level,
                        choices=LOG_LEVELS,
                        help='Logging level (default: %(default)s)')
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    try:
        defaults = MockConfig.from_env()
    except (ValueError, HttpDoubleError) as e:
        print(f"❌ Invalid HTTPDOUBLE_* environment setting: {e}", file=sys.stderr)
        return 2

    args = build_parser(defaults).parse_args(argv)

    try:
        level = parse_log_level(args.log_level)
    except ValueError as e:
        print(f"❌ {e}", file=sys.stderr)
        return 2
    logging.basicConfig(level=level, format='%(asctime)s %(levelname)s %(name)s: %(message)s')

    config = MockConfig(
        host='0.0.0.0' if args.expose else args.host,
        port=args.port,
        log_level=args.log_level,
        admin_prefix=args.admin_prefix,
        selection_policy=args.selection_policy,
        recording_enabled=args.record,
        recording_limit=args.record_limit,
        static_mock_dir=args.static_mock_dir
    )

    try:
        server = MockServer(config=config).bind()
    except (ValueError, HttpDoubleError) as e:
        print(f"❌ Failed to start mock server: {e}", file=sys.stderr)
        return 1

    print("🎭 httpdouble Mock Server")
    print(f"   Listening: http://{config.host}:{server.port}")
    print(f"   Admin API: {server.url(server.config.admin_prefix + '/mocks')}")
    print(f"   Mocks loaded: {len(server.registry)}")
    if config.recording_enabled:
        limit_desc = f"limit: {config.recording_limit}" if config.recording_limit > 0 else "unlimited"
        print(f"   Request recording enabled ({limit_desc})")
    print()
    sys.stdout.flush()

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.stop()
    print("\n👋 Mock server stopped")
    return 0


if __name__ == '__main__':
    sys.exit(main())
