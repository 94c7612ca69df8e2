"""
Prometheus metrics for the venue tracker.

Metrics exposed:
- Registry write counters (groups, joins, locations, messages, bets)
- Resurrection counter, so silent history loss stays visible
- Registry size gauges, refreshed by the scheduler
- Client-side poll failure counter (used by the member runner)
"""
from prometheus_client import Counter, Gauge

# Registry writes
groups_created_total = Counter(
    "venue_groups_created_total",
    "Total groups created",
    ["origin"],  # fresh | requested | resurrected
)

group_joins_total = Counter(
    "venue_group_joins_total",
    "Total join calls accepted by the registry",
    ["kind"],  # new | rejoin
)

location_updates_total = Counter(
    "venue_location_updates_total",
    "Total location updates",
    ["result"],  # ok | unknown_user
)

chat_messages_total = Counter(
    "venue_chat_messages_total",
    "Total chat messages",
    ["result"],  # stored | dropped
)

bets_total = Counter(
    "venue_bets_total",
    "Total bets accepted",
    ["kind"],  # new | replaced
)

# Registry size
registry_groups = Gauge(
    "venue_registry_groups",
    "Number of live groups in the registry",
)

registry_users = Gauge(
    "venue_registry_users",
    "Number of known users in the registry",
)

registry_users_online = Gauge(
    "venue_registry_users_online",
    "Number of users inside the liveness window",
)

# Client
client_poll_failures_total = Counter(
    "venue_client_poll_failures_total",
    "Poll ticks that failed on the client",
    ["error_type"],
)


def update_registry_metrics(registry) -> None:
    """
    Refresh the registry size gauges.

    Called periodically by the scheduler and on every health check.
    """
    stats = registry.stats()
    registry_groups.set(stats.groups)
    registry_users.set(stats.users)
    registry_users_online.set(stats.online_users)


def record_poll_failure(error_type: str = "unknown") -> None:
    """Record a failed client poll tick."""
    client_poll_failures_total.labels(error_type=error_type).inc()
