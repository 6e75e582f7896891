"""Command-line interface for the booking engine."""

from __future__ import annotations

import argparse
import logging
from datetime import datetime, timezone

import pandas as pd

from slotbook.config import load_config
from slotbook.domain.db import DEFAULT_DB_URL, get_session_factory, init_database
from slotbook.engine.service import BookingEngine
from slotbook.errors import ConfigError
from slotbook.io.export_csv import export_bookings_csv, export_offers_csv
from slotbook.io.import_csv import import_blocked_dates_csv, import_branches_csv
from slotbook.services.settings import apply_config
from slotbook.timeplan import parse_instant


def _db_url(args: argparse.Namespace, cfg) -> str:
    if args.db:
        return args.db
    if args.config:
        return cfg.db_url
    return DEFAULT_DB_URL


def _now(args: argparse.Namespace) -> datetime:
    if getattr(args, "now", None):
        return parse_instant(args.now)
    return datetime.now(timezone.utc)


def _engine(args: argparse.Namespace) -> BookingEngine:
    cfg = load_config(args.config)
    engine = init_database(_db_url(args, cfg))
    return BookingEngine(get_session_factory(engine=engine), tz=cfg.timezone)


def _cmd_init_db(args: argparse.Namespace) -> None:
    """Initialize the database."""
    cfg = load_config(args.config)
    db_url = _db_url(args, cfg)
    init_database(db_url)
    print(f"[OK] Database initialized: {db_url}")


def _cmd_apply_config(args: argparse.Namespace) -> None:
    """Validate the YAML configuration and store it."""
    cfg = load_config(args.config)
    engine = init_database(_db_url(args, cfg))
    with get_session_factory(engine=engine)() as session:
        try:
            apply_config(session, cfg)
        except ConfigError as e:
            print("[ERROR] Configuration rejected:")
            for problem in e.problems:
                print(f"  - {problem}")
            raise SystemExit(1)
    print(f"[OK] Applied {args.config}: {len(cfg.pools)} interview pools, {len(cfg.branches)} branches")


def _cmd_import_csv(args: argparse.Namespace) -> None:
    """Import branches and blocked dates from CSV."""
    cfg = load_config(args.config)
    engine = init_database(_db_url(args, cfg))
    with get_session_factory(engine=engine)() as session:
        if args.branches:
            count = import_branches_csv(session, args.branches)
            print(f"[OK] Imported {count} branches")
        if args.blocked_dates:
            count = import_blocked_dates_csv(session, args.blocked_dates, category=args.category)
            print(f"[OK] Blocked {count} new dates")


def _cmd_availability(args: argparse.Namespace) -> None:
    """List bookable offers."""
    booking_engine = _engine(args)
    start = pd.Timestamp(args.start).date()
    end = pd.Timestamp(args.end or args.start).date()
    offers = booking_engine.availability(args.category, start, end, _now(args))

    if args.out:
        export_offers_csv(offers, args.out)
        print(f"[OK] Wrote {len(offers)} offers to {args.out}")
        return
    for offer in offers:
        print(f"{offer.start_at:%Y-%m-%d %H:%M}  {offer.resource_id:<20} {offer.offer_id}")
    print(f"[OK] {len(offers)} offers")


def _cmd_book(args: argparse.Namespace) -> None:
    """Book an offer by id."""
    booking_engine = _engine(args)
    result = booking_engine.book(args.offer_id, args.candidate, _now(args), link_token=args.token)
    if not result.ok:
        print(f"[ERROR] {result.error.kind}: {result.error.message}")
        raise SystemExit(2)
    booking = result.booking
    print(f"[OK] Booking {booking.id} confirmed ({booking.confirmation_code}) {booking.start_at:%Y-%m-%d %H:%M} UTC")


def _cmd_cancel(args: argparse.Namespace) -> None:
    """Cancel a booking."""
    booking_engine = _engine(args)
    result = booking_engine.cancel_booking(args.booking_id, _now(args))
    if not result.ok:
        print(f"[ERROR] {result.error.message}")
        raise SystemExit(2)
    print(f"[OK] Booking {args.booking_id} cancelled")


def _cmd_issue_link(args: argparse.Namespace) -> None:
    """Create a one-time booking link."""
    booking_engine = _engine(args)
    link, token = booking_engine.issue_link(args.candidate, args.category, _now(args), resource_id=args.resource)
    print(f"[OK] Link {link.id} expires {link.expires_at:%Y-%m-%d %H:%M} UTC")
    print(token)


def _cmd_expire_links(args: argparse.Namespace) -> None:
    """Mark expired booking links."""
    count = _engine(args).expire_links(_now(args))
    print(f"[OK] Expired {count} booking links")


def _cmd_export(args: argparse.Namespace) -> None:
    """Export bookings to CSV."""
    cfg = load_config(args.config)
    engine = init_database(_db_url(args, cfg))
    with get_session_factory(engine=engine)() as session:
        count = export_bookings_csv(session, args.bookings, category=args.category, status=args.status)
    print(f"[OK] Exported {count} bookings to {args.bookings}")


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        prog="slotbook",
        description="Interview and trial availability / booking engine",
    )

    # Global options
    parser.add_argument("--db", help=f"Database URL (default: config value or {DEFAULT_DB_URL})")
    parser.add_argument("--config", help="Path to config YAML")
    parser.add_argument("--log-level", default="WARNING", help="Logging level (default: WARNING)")

    sub = parser.add_subparsers(dest="command", required=True)

    init = sub.add_parser("init-db", help="Initialize database")
    init.set_defaults(func=_cmd_init_db)

    apply = sub.add_parser("apply-config", help="Validate and store the --config file")
    apply.set_defaults(func=_cmd_apply_config)

    imp = sub.add_parser("import-csv", help="Import branches / blocked dates from CSV")
    imp.add_argument("--branches", help="Path to branches CSV")
    imp.add_argument("--blocked-dates", help="Path to blocked dates CSV")
    imp.add_argument("--category", choices=["interview", "trial"], help="Category for rows without one")
    imp.set_defaults(func=_cmd_import_csv)

    avail = sub.add_parser("availability", help="List bookable slots")
    avail.add_argument("--category", required=True, choices=["interview", "trial"])
    avail.add_argument("--start", required=True, help="First date (YYYY-MM-DD)")
    avail.add_argument("--end", help="Last date (YYYY-MM-DD, default: --start)")
    avail.add_argument("--now", help="Reference instant (ISO-8601, default: current time)")
    avail.add_argument("--out", help="Optional: write offers to CSV")
    avail.set_defaults(func=_cmd_availability)

    book = sub.add_parser("book", help="Book a slot by offer id")
    book.add_argument("--offer-id", required=True)
    book.add_argument("--candidate", required=True, help="Candidate id")
    book.add_argument("--token", help="Booking link token")
    book.add_argument("--now", help="Reference instant (ISO-8601)")
    book.set_defaults(func=_cmd_book)

    cancel = sub.add_parser("cancel", help="Cancel a booking")
    cancel.add_argument("--booking-id", required=True, type=int)
    cancel.add_argument("--now", help="Reference instant (ISO-8601)")
    cancel.set_defaults(func=_cmd_cancel)

    link = sub.add_parser("issue-link", help="Create a booking link for a candidate")
    link.add_argument("--candidate", required=True)
    link.add_argument("--category", required=True, choices=["interview", "trial"])
    link.add_argument("--resource", help="Restrict the link to one branch/pool")
    link.add_argument("--now", help="Reference instant (ISO-8601)")
    link.set_defaults(func=_cmd_issue_link)

    expire = sub.add_parser("expire-links", help="Mark expired booking links")
    expire.add_argument("--now", help="Reference instant (ISO-8601)")
    expire.set_defaults(func=_cmd_expire_links)

    exp = sub.add_parser("export", help="Export bookings to CSV")
    exp.add_argument("--bookings", required=True, help="Path to export bookings CSV")
    exp.add_argument("--category", choices=["interview", "trial"])
    exp.add_argument("--status", choices=["held", "confirmed", "cancelled"])
    exp.set_defaults(func=_cmd_export)

    args = parser.parse_args(argv)
    logging.basicConfig(level=args.log_level.upper(), format="[%(levelname)s] %(message)s")
    args.func(args)


if __name__ == "__main__":
    main()
