"""Status fetching, site selection and the last observed state."""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from .api import NoSiteError
from .models import StatusSnapshot

if TYPE_CHECKING:
    from .models import Site
    from .session import RemoteAlarmAPI

_LOGGER = logging.getLogger(__name__)


class StateCache:
    """Holds the most recently observed site state.

    The snapshot is immutable and replaced with one assignment, so a reader
    gets either the previous or the new snapshot, never a mix.
    """

    def __init__(self) -> None:
        """Initialize an empty cache."""
        self._snapshot: StatusSnapshot | None = None

    @property
    def current(self) -> StatusSnapshot | None:
        """Return the latest snapshot, or None before the first poll."""
        return self._snapshot

    def update(self, site: Site) -> StatusSnapshot:
        """Record a newly observed site state."""
        snapshot = StatusSnapshot(site=site, observed_at=datetime.now(UTC))
        self._snapshot = snapshot
        return snapshot


def select_site(sites: list[Site], site_id: str | None = None) -> Site:
    """Pick the controlled site.

    Args:
        sites: Sites in remote response order.
        site_id: Optional configured site to pin.

    Returns:
        The pinned site, or the first one when no site is pinned.

    Raises:
        NoSiteError: If there is no site, or the pinned site is missing.

    """
    if not sites:
        no_site = "No site found in SimpliSafe account"
        raise NoSiteError(no_site)

    if site_id is not None:
        for site in sites:
            if site.site_id == site_id:
                return site
        no_site = f"Site {site_id} not found in SimpliSafe account"
        raise NoSiteError(no_site)

    if len(sites) > 1:
        _LOGGER.debug(
            "Account has %d sites, using the first one (%s)",
            len(sites),
            sites[0].site_id,
        )
    return sites[0]


async def async_fetch_status(
    remote_api: RemoteAlarmAPI,
    site_id: str | None = None,
) -> tuple[str, Site]:
    """Fetch the current remote alarm state of the controlled site.

    Returns:
        Tuple of (remote alarm state, site).

    Raises:
        TransportError: If the remote cannot be reached.
        ParseError: If the response cannot be understood.
        NoSiteError: If the account has no usable site.
        AuthError: If the session cannot authorize the request.

    """
    sites = await remote_api.async_fetch_sites()
    site = select_site(sites, site_id)
    _LOGGER.debug("Site %s is in remote state %r", site.site_id, site.alarm_state)
    return site.alarm_state, site
