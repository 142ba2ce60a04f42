#!/usr/bin/env python3
"""
Surgery Registry - Main Entrypoint

Builds the patient registry from the clinic calendar and writes automated
status notes into control-visit events.
"""

import argparse
import json
import logging
import sys
from datetime import date
from typing import List, Optional

from .config import RegistryConfig
from .core.description_service import DescriptionUpdateService
from .core.event_classifier import categorize_events, classify
from .core.exceptions import RegistryError
from .core.fuzzy_matcher import DEFAULT_MAX_DISTANCE, find_best_match
from .core.registry_builder import SEED_MODES, SEED_MODE_SUPPLEMENT
from .core.registry_service import RegistryService
from .core.reporting_service import RegistryReportingService
from .sources import (
    CsvPatientSource,
    GoogleCalendarSource,
    LocalSnapshotSource,
    RemotePatientSource,
    probe_status
)


def setup_logging(verbose: bool = False):
    """Setup logging configuration."""
    level = logging.DEBUG if verbose else logging.INFO
    format_str = '%(asctime)s - %(levelname)s - %(message)s'

    logging.basicConfig(
        level=level,
        format=format_str,
        handlers=[
            logging.StreamHandler(sys.stderr)
        ]
    )


def build_config(args) -> RegistryConfig:
    """Environment values, overridden by whichever flags were given."""
    config = RegistryConfig.from_env()

    overrides = {
        'calendar_id': getattr(args, 'calendar_id', None),
        'access_token': getattr(args, 'token', None),
        'panel_url': getattr(args, 'panel_url', None),
        'default_hospital': getattr(args, 'default_hospital', None),
        'time_min': getattr(args, 'time_min', None),
        'timezone': getattr(args, 'timezone', None),
    }
    for key, value in overrides.items():
        if value:
            setattr(config, key, value)
    if getattr(args, 'insecure', False):
        config.verify_ssl = False

    config.__post_init__()
    return config


def make_event_source(args, config: RegistryConfig):
    """A snapshot file when given, the live calendar otherwise."""
    if getattr(args, 'snapshot', None):
        return LocalSnapshotSource(args.snapshot)

    if not config.calendar_id or not config.access_token:
        raise RegistryError("A calendar id and access token are required (or use --snapshot)")

    return GoogleCalendarSource(
        calendar_id=config.calendar_id,
        access_token=config.access_token,
        time_min=config.time_min,
        page_size=config.page_size,
        timeout=config.request_timeout,
        verify_ssl=config.verify_ssl,
    )


def make_patient_source(args, config: RegistryConfig, required: bool = False):
    """Patients from a CSV file, the panel URL, or none."""
    if getattr(args, 'patients_csv', None):
        return CsvPatientSource(args.patients_csv)
    if getattr(args, 'patients_url', None) or required:
        return RemotePatientSource(
            panel_url=getattr(args, 'patients_url', None) or config.panel_url,
            timeout=config.request_timeout,
            verify_ssl=config.verify_ssl,
        )
    return None


def cmd_build(args) -> int:
    config = build_config(args)
    service = RegistryService(default_hospital=config.default_hospital)

    patients, stats = service.build_from_sources(
        make_event_source(args, config),
        make_patient_source(args, config),
        seed_mode=args.seed_mode,
        snapshot_file=args.save_snapshot,
    )

    text = service.write_registry(patients, args.output)
    if not args.output:
        print(text)

    if not args.quiet:
        RegistryReportingService.print_registry_report(patients, stats)
    return 0


def cmd_update_descriptions(args) -> int:
    config = build_config(args)
    target = date.fromisoformat(args.date) if args.date else None

    service = DescriptionUpdateService(
        make_event_source(args, config),
        make_patient_source(args, config, required=True),
        timezone=config.timezone,
        dry_run=args.dry_run,
    )
    stats = service.run(target)
    RegistryReportingService.print_update_report(stats, service.get_decisions(), dry_run=args.dry_run)
    return 0


def cmd_classify(args) -> int:
    category = classify(args.title, args.color, args.start, args.end)
    print(category.value)
    return 0


def cmd_events(args) -> int:
    config = build_config(args)
    events = categorize_events(make_event_source(args, config).fetch_events())

    text = json.dumps(events, ensure_ascii=False, indent=2)
    if args.output:
        with open(args.output, 'w', encoding='utf-8') as f:
            f.write(text)
        logging.info(f"{len(events)} categorized events written to: {args.output}")
    else:
        print(text)
    return 0


def cmd_match(args) -> int:
    config = build_config(args)
    patients = make_patient_source(args, config, required=True).fetch_patients()

    best = find_best_match(args.name, patients, max_distance=args.max_distance)
    if best is None:
        logging.warning(f"NO_MATCH - '{args.name}' against {len(patients)} patients")
        return 1

    print(json.dumps(best.to_dict(), ensure_ascii=False, indent=2))
    return 0


def cmd_status(args) -> int:
    config = build_config(args)
    urls = args.urls or [config.panel_url]

    statuses = [probe_status(url, url, timeout=config.probe_timeout) for url in urls]
    print(json.dumps([s.to_dict() for s in statuses], indent=2))
    return 0 if all(s.online for s in statuses) else 1


def _add_source_arguments(parser: argparse.ArgumentParser):
    parser.add_argument('--calendar-id', help='Google Calendar id (env: CALENDAR_ID)')
    parser.add_argument('-t', '--token', help='Bearer token for the Calendar API (env: GOOGLE_ACCESS_TOKEN)')
    parser.add_argument('--snapshot', help='Read events from a JSON snapshot instead of the live calendar')
    parser.add_argument('--time-min', help='Earliest event start to fetch (env: CALENDAR_TIME_MIN)')
    parser.add_argument('--patients-csv', help='CSV file with name,surgery_date,hospital columns')
    parser.add_argument('--patients-url', help='Panel base URL serving /api/patient-db')
    parser.add_argument('--insecure', action='store_true', help='Skip TLS certificate verification')


def create_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Surgery Registry - calendar driven surgery and control tracking",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s build --snapshot events.json -o registry.json
  %(prog)s build --calendar-id clinic@group.calendar.google.com -t TOKEN --patients-csv patients.csv
  %(prog)s update-descriptions --dry-run --date 2025-02-01 --patients-url http://localhost:3005
  %(prog)s events --snapshot events.json -o categorized.json
  %(prog)s classify "08.00 🔪 Ahmet Yılmaz" --color 4
  %(prog)s match "Ahmet Yilmaz" --patients-csv patients.csv
  %(prog)s status http://localhost:3005 http://localhost:3006
        """
    )
    parser.add_argument('--verbose', action='store_true', help='Enable verbose logging')

    subparsers = parser.add_subparsers(dest='command', required=True)

    build = subparsers.add_parser('build', help='Build the patient registry')
    _add_source_arguments(build)
    build.add_argument('-o', '--output', help='Output JSON file (default: stdout)')
    build.add_argument('--seed-mode', choices=SEED_MODES, default=SEED_MODE_SUPPLEMENT,
                       help=f'How seed patients combine with calendar surgeries (default: {SEED_MODE_SUPPLEMENT})')
    build.add_argument('--default-hospital', help='Hospital used when none is detected (env: DEFAULT_HOSPITAL)')
    build.add_argument('--save-snapshot', help='Also save the fetched events to this JSON file')
    build.add_argument('--quiet', action='store_true', help='Do not print the registry report')
    build.set_defaults(func=cmd_build)

    update = subparsers.add_parser('update-descriptions', help='Write status notes into control visits')
    _add_source_arguments(update)
    update.add_argument('--panel-url', help='Panel base URL (env: PANEL_APP_URL)')
    update.add_argument('--date', help='Day to process as YYYY-MM-DD (default: today)')
    update.add_argument('--timezone', help='Timezone defining "today" (env: REGISTRY_TIMEZONE)')
    update.add_argument('--dry-run', action='store_true', help='Compute notes without writing them')
    update.set_defaults(func=cmd_update_descriptions)

    classify_parser = subparsers.add_parser('classify', help='Classify one event title')
    classify_parser.add_argument('title', help='Event title')
    classify_parser.add_argument('--color', help='Google colorId or hex color')
    classify_parser.add_argument('--start', help='Event start (RFC 3339)')
    classify_parser.add_argument('--end', help='Event end (RFC 3339)')
    classify_parser.set_defaults(func=cmd_classify)

    events = subparsers.add_parser('events', help='Categorize calendar events for display')
    _add_source_arguments(events)
    events.add_argument('-o', '--output', help='Output JSON file (default: stdout)')
    events.set_defaults(func=cmd_events)

    match = subparsers.add_parser('match', help='Find the registered patient closest to a name')
    match.add_argument('name', help='Patient name as written on the calendar')
    match.add_argument('--patients-csv', help='CSV file with name,surgery_date,hospital columns')
    match.add_argument('--patients-url', help='Panel base URL serving /api/patient-db')
    match.add_argument('--panel-url', help='Panel base URL (env: PANEL_APP_URL)')
    match.add_argument('--max-distance', type=int, default=DEFAULT_MAX_DISTANCE,
                       help=f'Largest edit distance accepted (default: {DEFAULT_MAX_DISTANCE})')
    match.set_defaults(func=cmd_match)

    status = subparsers.add_parser('status', help='Probe service health endpoints')
    status.add_argument('urls', nargs='*', help='Service base URLs (default: panel URL)')
    status.add_argument('--panel-url', help='Panel base URL (env: PANEL_APP_URL)')
    status.set_defaults(func=cmd_status)

    return parser


def main(argv: Optional[List[str]] = None):
    """Main entrypoint for the surgery registry."""
    parser = create_parser()
    args = parser.parse_args(argv)

    # Setup logging
    setup_logging(args.verbose)

    try:
        exit_code = args.func(args)
    except (RegistryError, ValueError) as e:
        logging.error(f"Processing failed: {e}")
        sys.exit(1)

    if exit_code:
        sys.exit(exit_code)


if __name__ == "__main__":
    main()
