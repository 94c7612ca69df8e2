#!/usr/bin/env python3
"""
Simulated group member for the venue tracker.

Joins (or creates) a group, walks around the venue reporting positions, and
keeps the group view in sync until stopped. Useful for demos and for watching
resurrection after a server restart.

Usage:
    python run_member.py --name Alice --create           # Create a new group
    python run_member.py --name Bob --group AB12         # Join an existing group
    python run_member.py --name Bob --rejoin             # Rejoin the cached session
    python run_member.py --status                        # Show the cached session
"""
import argparse
import asyncio
import signal
import sys
from typing import Optional

from venue_tracker.client import ClientCache, RegistryClient, VenueSession, VenueView, Zone, simulated_walk
from venue_tracker.core.config import settings
from venue_tracker.core.errors import SessionExpiredError, VenueTrackerError
from venue_tracker.core.logging import configure_logging, get_logger
from venue_tracker.models import DEFAULT_CALIBRATION, Coordinates

configure_logging(level=settings.LOG_LEVEL, json_output=False)
logger = get_logger(__name__)


class MemberRunner:
    """Runs one simulated member until a signal or session expiry."""

    def __init__(self, args: argparse.Namespace):
        self.args = args
        self.shutdown = asyncio.Event()
        self.session: Optional[VenueSession] = None
        self.error: Optional[VenueTrackerError] = None
        self._last_summary = None
        self._inside_zone: Optional[bool] = None

    async def start(self) -> int:
        """Join, run both loops, and stop cleanly."""
        cache = ClientCache(self.args.cache)
        client = RegistryClient(self.args.url, timeout=settings.CLIENT_TIMEOUT_SECONDS)

        try:
            self.session = await self._join(client, cache)
        except VenueTrackerError as e:
            logger.error(f"Could not join: {e.message}")
            await client.close()
            return 1

        logger.info(f"Joined group {self.session.group_code} as {self.session.user_name} ({self.session.user_id})")

        loop = asyncio.get_running_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, self._set_shutdown)

        start = Coordinates(lat=self.args.lat, lng=self.args.lng)
        self.session.start(positions=simulated_walk(start, step_m=self.args.step, interval=self.args.move_interval))

        if self.args.message:
            await self.session.send_message(self.args.message)
        for vote in self.args.vote or []:
            fight_id, _, prediction = vote.partition(":")
            await self.session.place_bet(fight_id, prediction.upper())

        shutdown = asyncio.create_task(self.shutdown.wait())
        closed = asyncio.create_task(self.session.closed.wait())
        await asyncio.wait({shutdown, closed}, return_when=asyncio.FIRST_COMPLETED)
        shutdown.cancel()
        closed.cancel()

        await self.session.stop()
        await client.close()
        logger.info("Member runner stopped")
        return 1 if self.error else 0

    async def _join(self, client: RegistryClient, cache: ClientCache) -> VenueSession:
        kwargs = dict(
            poll_interval=self.args.interval,
            on_update=self._on_update,
            on_error=self._on_error,
            zone=self.args.zone,
        )
        if self.args.rejoin:
            cached = cache.load_session()
            if cached is None:
                raise SessionExpiredError("No cached session to rejoin")
            return await VenueSession.join(
                client, cache, self.args.name or cached.name, group_code=cached.group_code, **kwargs
            )
        if self.args.create:
            return await VenueSession.join(
                client, cache, self.args.name, group_code=self.args.group, action="create",
                calibration=DEFAULT_CALIBRATION, **kwargs
            )
        return await VenueSession.join(client, cache, self.args.name, group_code=self.args.group, **kwargs)

    def _on_update(self, view: VenueView):
        if view.notice:
            logger.warning(view.notice)
            self.session.dismiss_notice()

        if view.zone is not None and view.zone.inside != self._inside_zone:
            self._inside_zone = view.zone.inside
            where = "inside" if view.zone.inside else "outside"
            logger.info(f"Now {where} the meeting zone ({view.zone.distance_m:.0f}m from its centre)")

        summary = (len(view.rows), view.online_count, len(view.messages), len(view.bets))
        if summary == self._last_summary:
            return
        self._last_summary = summary
        logger.info(
            f"{len(view.rows)} members ({view.online_count} online), "
            f"{len(view.messages)} messages, {len(view.bets)} votes"
        )
        for row in view.rows:
            if row.distance_label:
                logger.debug(f"  {row.member.name}: {row.distance_label}")

    def _on_error(self, error: VenueTrackerError):
        logger.error(error.message)
        self.error = error

    def _set_shutdown(self):
        logger.info("Shutdown signal received")
        self.shutdown.set()


def parse_zone(value: str) -> Zone:
    """Parse ``LAT,LNG,RADIUS_M`` into a Zone."""
    try:
        lat, lng, radius = (float(part) for part in value.split(","))
    except ValueError:
        raise argparse.ArgumentTypeError("expected LAT,LNG,RADIUS_M")
    return Zone(reference=Coordinates(lat=lat, lng=lng), radius_m=radius)


def show_status(cache_path: Optional[str]) -> int:
    """Print the cached session and votes."""
    cache = ClientCache(cache_path)
    session = cache.load_session()
    if session is None:
        print("No cached session")
        return 1

    print(f"User:  {session.name} ({session.user_id})")
    print(f"Group: {session.group_code}")
    votes = cache.votes_for(session.user_id)
    print(f"Votes: {len(votes)}")
    for vote in votes.values():
        print(f"  • {vote.fight_id}: {vote.prediction}")
    return 0


def main():
    """Main entry point."""
    parser = argparse.ArgumentParser(
        description='Run a simulated venue tracker group member'
    )

    parser.add_argument('--name', type=str, help='Display name')
    parser.add_argument('--group', type=str, metavar='CODE', help='Group code to join (or resurrect with --create)')
    parser.add_argument('--create', action='store_true', help='Create a group instead of joining')
    parser.add_argument('--rejoin', action='store_true', help='Rejoin the group in the cached session')
    parser.add_argument('--status', action='store_true', help='Show the cached session and exit')

    parser.add_argument('--url', type=str, default=settings.CLIENT_BASE_URL, help='Server base URL')
    parser.add_argument('--cache', type=str, default=settings.CLIENT_CACHE_PATH, help='Client cache file')
    parser.add_argument('--interval', type=float, default=settings.POLL_INTERVAL_SECONDS, help='Seconds between polls')

    parser.add_argument('--lat', type=float, default=DEFAULT_CALIBRATION.p1.gps.lat, help='Starting latitude')
    parser.add_argument('--lng', type=float, default=DEFAULT_CALIBRATION.p1.gps.lng, help='Starting longitude')
    parser.add_argument('--step', type=float, default=2.0, help='Metres walked per position fix')
    parser.add_argument('--move-interval', type=float, default=2.0, help='Seconds between position fixes')
    parser.add_argument('--zone', type=parse_zone, metavar='LAT,LNG,RADIUS_M', help='Meeting zone to report entering and leaving')

    parser.add_argument('--message', type=str, help='Chat message to send after joining')
    parser.add_argument('--vote', action='append', metavar='FIGHT:A|B', help='Vote to cast after joining')

    args = parser.parse_args()

    if args.status:
        return show_status(args.cache)

    if not args.name and not args.rejoin:
        parser.error('--name is required')
    if not args.create and not args.rejoin and not args.group:
        parser.error('--group is required when joining')

    runner = MemberRunner(args)

    try:
        return asyncio.run(runner.start())
    except KeyboardInterrupt:
        logger.info("Received interrupt, shutting down...")
        return 0


if __name__ == "__main__":
    sys.exit(main())
