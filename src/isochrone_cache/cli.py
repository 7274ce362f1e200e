"""CLI entry point for the isochrone-cache command."""

import argparse
import json
import sys
from typing import List, Optional

from .config import AppConfig
from .domain import TransportMode
from .exceptions import ConfigurationError, IsochroneCacheError
from .logging_config import configure_logging
from .services import IsochroneCacheService


def _setup_argument_parser() -> argparse.ArgumentParser:
    """Setup and return command line argument parser."""
    parser = argparse.ArgumentParser(
        prog='isochrone-cache',
        description='Inspect and warm the isochrone cache',
        formatter_class=argparse.RawDescriptionHelpFormatter
    )
    subparsers = parser.add_subparsers(dest='command', required=True)

    get_parser = subparsers.add_parser('get', help='Print an isochrone as GeoJSON')
    get_parser.add_argument('lng', type=float)
    get_parser.add_argument('lat', type=float)
    get_parser.add_argument('duration', type=int, help='minutes')
    get_parser.add_argument('mode', choices=[m.value for m in TransportMode])
    get_parser.add_argument('--simplified', action='store_true', help='Return the simplified ring when cached')

    subparsers.add_parser('metrics', help='Print cache metrics for this process')
    subparsers.add_parser('clear', help='Empty both cache tiers')
    subparsers.add_parser('precompute', help='Run one precompute sweep in the foreground')
    return parser


def _create_service() -> IsochroneCacheService:
    """Factory function to create a service without the background scheduler."""
    config = AppConfig.from_env()
    config.validate()
    service = IsochroneCacheService(config)
    service.initialize(start_scheduler=False)
    return service


def _feature(ring, duration: int, mode: str) -> dict:
    return {
        "type": "Feature",
        "properties": {"duration": duration, "mode": mode},
        "geometry": {"type": "Polygon", "coordinates": [[list(c) for c in ring]]},
    }


def _handle_error(exception: Exception) -> int:
    if isinstance(exception, ConfigurationError):
        print(str(exception), file=sys.stderr)
    else:
        print(f"Error: {exception}", file=sys.stderr)
    return 1


def main(argv: Optional[List[str]] = None, service: Optional[IsochroneCacheService] = None) -> int:
    """Main CLI entry point."""
    parser = _setup_argument_parser()

    if argv is None:
        argv = sys.argv[1:]

    try:
        args = parser.parse_args(argv)
    except SystemExit as e:
        return e.code or 0

    owns_service = service is None
    try:
        if owns_service:
            configure_logging(stream=sys.stderr)
            service = _create_service()

        if args.command == 'get':
            ring = service.get_isochrone((args.lng, args.lat), args.duration, args.mode,
                                         use_simplified=args.simplified)
            if ring is None:
                print("No isochrone available", file=sys.stderr)
                return 1
            print(json.dumps(_feature(ring, args.duration, args.mode)))
        elif args.command == 'metrics':
            print(json.dumps(service.get_metrics().to_dict(), indent=2))
        elif args.command == 'clear':
            service.clear_cache()
            print("Cache cleared")
        elif args.command == 'precompute':
            warmed = service.scheduler.run_once()
            print(f"Warmed {warmed} isochrones")
        return 0

    except (IsochroneCacheError, ValueError) as e:
        return _handle_error(e)
    finally:
        if owns_service and service is not None:
            service.shutdown()


if __name__ == "__main__":
    sys.exit(main())
