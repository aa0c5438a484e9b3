"""Factory for the API generation selected by configuration."""

import logging

import httpx

from .const import API_GENERATION_LEGACY, API_GENERATION_OAUTH
from .legacy import LegacyAlarmAPI
from .oauth import OAuthAlarmAPI
from .session import RemoteAlarmAPI

_LOGGER = logging.getLogger(__name__)

_GENERATIONS: dict[str, type[RemoteAlarmAPI]] = {
    API_GENERATION_LEGACY: LegacyAlarmAPI,
    API_GENERATION_OAUTH: OAuthAlarmAPI,
}


def create_remote_api(
    generation: str,
    session: httpx.AsyncClient,
    device_id: str | None = None,
) -> RemoteAlarmAPI:
    """Return a remote session for the given API generation.

    Raises:
        ValueError: If the generation is not supported.

    """
    try:
        api_class = _GENERATIONS[generation]
    except KeyError as err:
        error_msg = (
            f"Unsupported API generation {generation!r}, "
            f"expected one of {sorted(_GENERATIONS)}"
        )
        raise ValueError(error_msg) from err

    _LOGGER.debug("Using %s API generation", generation)
    return api_class(session, device_id=device_id)
