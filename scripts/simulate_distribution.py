#!/usr/bin/env python3
"""
Distribution Simulation Script

Runs the distribution pipeline for one lead against the live batch table and
prints the decision trace and the candidate table. Simulate mode (default)
writes nothing; --commit performs a real distribution.

Usage:
    python scripts/simulate_distribution.py --email jan@example.nl --branch solar --postcode 8011AA
    python scripts/simulate_distribution.py --email jan@example.nl --branch solar --postcode 8011AA --commit
    python scripts/simulate_distribution.py --email jan@example.nl --branch solar --postcode 8011AA --offline-geocoder
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path

# Add parent directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from domain.lead import InvalidLeadError, LeadSubmission
from services.distribution_service import DistributionEngine, DistributionMode, DistributionReport
from services.geocoder import PdokGeocoder, StaticPostcodeGeocoder
from services.notifications import LoggingNotifier
from services.settings import load_settings


def print_report(report: DistributionReport) -> None:
    print("=" * 80)
    print(f"DISTRIBUTION {report.mode.value.upper()}: {report.outcome.value}")
    print("=" * 80)
    for line in report.trace:
        print(line)

    print()
    print(f"{'Customer':<24} {'Territory':<14} {'Eligible':<9} {'Score':>8} {'Km':>8}  Reason")
    print("-" * 80)
    for c in report.candidates:
        score = f"{c.priority_score:g}" if c.priority_score is not None else "-"
        km = f"{c.distance_km:.1f}" if c.distance_km is not None else "-"
        name = (c.customer_name or c.customer_id)[:24]
        print(f"{name:<24} {c.territory_type:<14} {'yes' if c.eligible else 'no':<9} {score:>8} {km:>8}  {c.reason}")
    print("-" * 80)
    print(f"Planned: {report.distributions_planned}  Executed: {report.distributions_executed}")
    if report.error:
        print(f"Error: {report.error}")


def main() -> int:
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Simulate (or commit) the distribution of one lead",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--email", required=True, help="Lead contact email")
    parser.add_argument("--branch", required=True, help="Branch (vertical), e.g. solar")
    parser.add_argument("--postcode", help="Dutch postcode, e.g. 8011AA")
    parser.add_argument("--name", help="Lead name")
    parser.add_argument("--phone", help="Lead phone number")
    parser.add_argument(
        "--commit",
        action="store_true",
        help="Perform a real distribution instead of a simulation"
    )
    parser.add_argument(
        "--offline-geocoder",
        action="store_true",
        help="Use the built-in postcode table instead of PDOK"
    )
    parser.add_argument("--json", action="store_true", help="Print the report as JSON")

    args = parser.parse_args()

    settings = load_settings()
    logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))

    from repositories import batch_repository, distribution_repository, lead_repository

    geocoder = (
        StaticPostcodeGeocoder()
        if args.offline_geocoder
        else PdokGeocoder(settings.geocoder_url, timeout=settings.geocoder_timeout_seconds)
    )
    engine = DistributionEngine(
        geocoder=geocoder,
        leads=lead_repository,
        batches=batch_repository,
        distributions=distribution_repository,
        notifier=LoggingNotifier(),
        settings=settings,
    )

    submission = LeadSubmission(
        email=args.email,
        branch=args.branch,
        postcode=args.postcode,
        name=args.name,
        phone=args.phone,
        source="cli",
    )
    mode = DistributionMode.COMMIT if args.commit else DistributionMode.SIMULATE

    try:
        report = engine.distribute(submission, mode=mode)
    except InvalidLeadError as e:
        print(f"Invalid lead: {e}", file=sys.stderr)
        return 2
    except KeyboardInterrupt:
        print("\n\nDistribution interrupted by user")
        return 130
    finally:
        if isinstance(geocoder, PdokGeocoder):
            geocoder.close()

    if args.json:
        print(json.dumps(report.to_dict(), indent=2))
    else:
        print_report(report)
    return 0 if report.success else 1


if __name__ == "__main__":
    sys.exit(main())
