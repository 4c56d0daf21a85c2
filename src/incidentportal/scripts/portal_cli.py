#!/usr/bin/env python3
"""Incident portal CLI.

Commands:
    list          - List emergencies, reports or alerts with search, filters and paging
    toggle        - Toggle the status of an incident (admin)
    delete        - Delete an incident after confirmation (admin)
    comments      - Show the comment thread of an incident, optionally adding one
    map           - Write an HTML map of the visible incidents
    heatmap       - Write an HTML heatmap of reports and print the location table
    stats         - Print the statistics breakdowns
    create-alert  - Publish a new alert (admin)

The current user is read from a JSON profile file shaped like the web
client's local storage (``{"user": {...}, "authToken": "..."}``).
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

from incidentportal.api.client import PortalClient
from incidentportal.comments.reconciler import CommentReconciler
from incidentportal.core.config import get_settings
from incidentportal.core.notify import NotificationCenter
from incidentportal.core.session import MemoryKeyValueStore, Session, load_session, load_token
from incidentportal.errors import PortalError
from incidentportal.incidents.models import IncidentKind, alert_severity, build_alert_payload
from incidentportal.incidents.mutations import MutationController
from incidentportal.incidents.store import IncidentStore
from incidentportal.incidents.view import FilterState, derive_view
from incidentportal.maps.folium_backend import FoliumMapBackend
from incidentportal.maps.heatmap import heat_breakdown
from incidentportal.maps.synchronizer import MapSynchronizer
from incidentportal.stats.breakdown import StatisticsClient, bars

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Silence noisy libraries
logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

BAR_WIDTH = 40


def load_profile(path: str | None) -> MemoryKeyValueStore:
    """Read a local-storage style JSON file into a key-value store."""
    if not path:
        return MemoryKeyValueStore()
    return MemoryKeyValueStore(json.loads(Path(path).read_text()))


def _open(args) -> tuple[PortalClient, Session]:
    kv = load_profile(args.profile)
    session = load_session(kv)
    return PortalClient(base_url=args.base_url, token=load_token(kv)), session


def _print_notifications(notifier: NotificationCenter) -> None:
    for notification in notifier.active():
        print(f"[{notification.severity}] {notification.message}")


def _kind(args) -> IncidentKind:
    return IncidentKind(args.kind)


async def _list(args) -> int:
    client, _ = _open(args)
    async with client:
        store = IncidentStore(client, _kind(args))
        await store.load_all()

    if store.load_failed:
        print(f"Error: could not load {store.kind.collection}: {store.error}")
        return 1

    filters = FilterState(
        search_term=args.search or "",
        category_filter=args.category or "",
        status_filter=args.status or args.level or "",
        author_filter=args.author or "",
        region_filter=args.region or "",
        page=args.page,
        page_size=args.page_size or get_settings().page_size_for(args.kind),
    )
    view = derive_view(store.incidents, filters)

    print(f"\n{'ID':<6} {'Status':<12} {'Category':<16} {'Author':<20} {'Description'}")
    print("-" * 100)
    for incident in view.page_items:
        summary = incident.title or incident.description
        where = "" if incident.is_mappable(get_settings().region) else " (not on map)"
        print(
            f"{incident.id:<6} {incident.status_label:<12} {incident.category[:15]:<16} "
            f"{incident.author.name[:19]:<20} {summary[:40]}{where}"
        )

    print(
        f"\nPage {view.page} of {max(view.total_pages, 1)}, "
        f"{view.total_matching} matching of {len(store)}"
    )
    return 0


async def _toggle(args) -> int:
    client, session = _open(args)
    notifier = NotificationCenter()
    async with client:
        store = IncidentStore(client, _kind(args))
        await store.load_all()
        controller = MutationController(store, session, notifier)
        outcome = await controller.toggle_status(args.incident_id)

    _print_notifications(notifier)
    return 0 if outcome.ok else 1


def _confirm_on_terminal(incident) -> bool:
    answer = input(f"Delete #{incident.id} ({incident.description[:40]})? [y/N] ")
    return answer.strip().lower() in ("y", "yes")


async def _delete(args) -> int:
    client, session = _open(args)
    notifier = NotificationCenter()
    confirm = (lambda _incident: True) if args.yes else _confirm_on_terminal
    async with client:
        store = IncidentStore(client, _kind(args))
        await store.load_all()
        controller = MutationController(store, session, notifier)
        outcome = await controller.delete(args.incident_id, confirm)

    _print_notifications(notifier)
    return 0 if outcome.ok or outcome.reason == "cancelled" else 1


async def _comments(args) -> int:
    client, session = _open(args)
    async with client:
        reconciler = CommentReconciler(client, session, _kind(args))
        if args.add:
            try:
                thread = await reconciler.add(args.incident_id, args.add)
            except PortalError as e:
                print(f"Error: {e}")
                return 1
        else:
            thread = await reconciler.load_thread(args.incident_id)

    if not thread:
        print(f"No comments on #{args.incident_id}")
        return 0
    for comment in thread:
        when = comment.created_at.strftime("%Y-%m-%d %H:%M") if comment.created_at else ""
        print(f"{comment.author.name} {when}\n  {comment.body}")
    print(f"\nTotal: {len(thread)} comments")
    return 0


async def _map(args) -> int:
    client, _ = _open(args)
    async with client:
        store = IncidentStore(client, _kind(args))
        await store.load_all()

    view = derive_view(
        store.incidents,
        FilterState(search_term=args.search or "", page=args.page, page_size=args.page_size),
    )
    backend = FoliumMapBackend()
    sync = MapSynchronizer(backend)
    sync.mount()
    sync.redraw(view.page_items)
    if args.focus is not None and not sync.focus_on(args.focus):
        print(f"#{args.focus} is not on the map")
    backend.save(args.output)
    drawn = len(sync.marker_ids)
    sync.dispose()

    print(f"Wrote {drawn} markers to {args.output}")
    return 0


async def _create_alert(args) -> int:
    client, session = _open(args)
    if not session.is_privileged:
        print("Error: only administrators can publish alerts")
        return 1

    try:
        payload = build_alert_payload(
            user_id=session.user_id,
            title=args.title,
            description=args.description,
            level=args.level,
            region_id=args.region_id,
        )
        async with client:
            alert = await IncidentStore(client, IncidentKind.ALERT).create(payload)
    except PortalError as e:
        print(f"Error: {e}")
        return 1

    print(f"Published alert #{alert.id} ({alert.level}, {alert_severity(alert.level)})")
    return 0


async def _heatmap(args) -> int:
    client, _ = _open(args)
    async with client:
        snapshot = await StatisticsClient(client).fetch_all()

    if "heatmap" in snapshot.errors:
        print(f"Error: {snapshot.errors['heatmap']}")
        return 1

    backend = FoliumMapBackend()
    sync = MapSynchronizer(backend)
    sync.mount()
    sync.show_heatmap(snapshot.heatmap)
    backend.save(args.output)

    breakdown = heat_breakdown(snapshot.heatmap, sync.region)
    print(f"\n{'#':<4} {'Lat':>10} {'Lng':>10} {'Count':>8}  Location")
    print("-" * 50)
    for row in breakdown.rows:
        lat = f"{row.lat:.4f}" if row.lat is not None else "N/A"
        lng = f"{row.lng:.4f}" if row.lng is not None else "N/A"
        print(f"{row.index:<4} {lat:>10} {lng:>10} {row.weight:>8g}  {row.location}")
    print(
        f"\nTotal: {breakdown.total_weight:g} over {breakdown.locations} locations "
        f"({breakdown.inside} inside, {breakdown.outside} flagged)"
    )
    return 0


async def _stats(args) -> int:
    client, _ = _open(args)
    async with client:
        snapshot = await StatisticsClient(client).fetch_all()

    for name, series in snapshot.series.items():
        print(f"\n{name.replace('_', ' ').title()}")
        if not series:
            print("  (no data)")
            continue
        for bar in bars(series):
            drawn = "#" * round(bar.ratio * BAR_WIDTH)
            print(f"  {bar.label[:20]:<20} {drawn:<{BAR_WIDTH}} {bar.count:g}")

    for name, error in snapshot.errors.items():
        print(f"Warning: {name} unavailable ({error})")
    return 0 if snapshot.complete else 1


def cmd_list(args) -> int:
    """List incidents."""
    return asyncio.run(_list(args))


def cmd_toggle(args) -> int:
    """Toggle an incident's status."""
    return asyncio.run(_toggle(args))


def cmd_delete(args) -> int:
    """Delete an incident."""
    return asyncio.run(_delete(args))


def cmd_comments(args) -> int:
    """Show or add comments."""
    return asyncio.run(_comments(args))


def cmd_map(args) -> int:
    """Write a marker map."""
    return asyncio.run(_map(args))


def cmd_create_alert(args) -> int:
    """Publish an alert."""
    return asyncio.run(_create_alert(args))


def cmd_heatmap(args) -> int:
    """Write a heatmap."""
    return asyncio.run(_heatmap(args))


def cmd_stats(args) -> int:
    """Print statistics."""
    return asyncio.run(_stats(args))


def _add_kind(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--kind",
        choices=[k.value for k in IncidentKind],
        default=IncidentKind.REPORT.value,
        help="Incident kind (default: reporte)",
    )


def build_parser() -> argparse.ArgumentParser:
    """Argument parser for all commands."""
    parser = argparse.ArgumentParser(
        description="Incident portal CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable verbose logging")
    parser.add_argument("--base-url", help="Backend URL (default: PORTAL_BASE_URL)")
    parser.add_argument("--profile", metavar="FILE", help="JSON file with the user profile")

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # list command
    list_parser = subparsers.add_parser("list", help="List incidents")
    _add_kind(list_parser)
    list_parser.add_argument("--search", help="Match id, title, description or author")
    list_parser.add_argument("--category", help="Only this category")
    list_parser.add_argument("--status", help="Only this status")
    list_parser.add_argument("--level", help="Only alerts of this level")
    list_parser.add_argument("--author", help="Author name contains")
    list_parser.add_argument("--region", help="Region name contains")
    list_parser.add_argument("--page", type=int, default=1, help="Page number")
    list_parser.add_argument("--page-size", type=int, help="Incidents per page")
    list_parser.set_defaults(func=cmd_list)

    # toggle command
    toggle_parser = subparsers.add_parser("toggle", help="Toggle an incident's status")
    _add_kind(toggle_parser)
    toggle_parser.add_argument("incident_id", type=int, help="Incident ID")
    toggle_parser.set_defaults(func=cmd_toggle)

    # delete command
    delete_parser = subparsers.add_parser("delete", help="Delete an incident")
    _add_kind(delete_parser)
    delete_parser.add_argument("incident_id", type=int, help="Incident ID")
    delete_parser.add_argument("-y", "--yes", action="store_true", help="Skip confirmation")
    delete_parser.set_defaults(func=cmd_delete)

    # comments command
    comments_parser = subparsers.add_parser("comments", help="Show an incident's comments")
    _add_kind(comments_parser)
    comments_parser.add_argument("incident_id", type=int, help="Incident ID")
    comments_parser.add_argument("--add", metavar="TEXT", help="Post a new comment first")
    comments_parser.set_defaults(func=cmd_comments)

    # map command
    map_parser = subparsers.add_parser("map", help="Write an HTML map of incidents")
    _add_kind(map_parser)
    map_parser.add_argument("--search", help="Match id, description or author")
    map_parser.add_argument("--page", type=int, default=1, help="Page number")
    map_parser.add_argument("--page-size", type=int, default=100, help="Incidents per page")
    map_parser.add_argument("--focus", type=int, help="Open the popup of this incident")
    map_parser.add_argument("-o", "--output", default="incidents.html", help="Output file")
    map_parser.set_defaults(func=cmd_map)

    # heatmap command
    heatmap_parser = subparsers.add_parser("heatmap", help="Write an HTML heatmap of reports")
    heatmap_parser.add_argument("-o", "--output", default="heatmap.html", help="Output file")
    heatmap_parser.set_defaults(func=cmd_heatmap)

    # create-alert command
    alert_parser = subparsers.add_parser("create-alert", help="Publish a new alert")
    alert_parser.add_argument("--title", required=True, help="Alert title")
    alert_parser.add_argument("--description", required=True, help="Alert text")
    alert_parser.add_argument("--level", required=True, help="Verde, Amarillo, Naranja or Rojo")
    alert_parser.add_argument("--region-id", type=int, help="Region the alert applies to")
    alert_parser.set_defaults(func=cmd_create_alert)

    # stats command
    stats_parser = subparsers.add_parser("stats", help="Print statistics")
    stats_parser.set_defaults(func=cmd_stats)

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if not args.command:
        parser.print_help()
        return 1

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
