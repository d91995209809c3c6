"""User directory adapters.

The settlement core needs a display name and a PIX key per party and
nothing else. Profiles live in the marketplace's user service; this module
fetches them over HTTP, or serves them from memory in tests and the
simulation.
"""

from __future__ import annotations

from urllib.parse import quote

import httpx

from work_settlement.domain.collaborators import UserProfile
from work_settlement.domain.exceptions import UserDirectoryError
from work_settlement.logging_config import get_logger

logger = get_logger(__name__)


class HttpUserDirectory:
    """Looks users up at ``GET {base_url}/{user_id}``.

    Expects a JSON body with ``id``, ``name`` and optionally ``pixKey``.
    A 404 means the user is unknown; any other failure raises
    UserDirectoryError.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout
        self._transport = transport

    async def get_user(self, user_id: str) -> UserProfile | None:
        url = f"{self._base_url}/{quote(user_id, safe='')}"
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            try:
                response = await client.get(url)
                if response.status_code == 404:
                    logger.info("user_directory.not_found", user_id=user_id)
                    return None
                response.raise_for_status()
                data = response.json()
            except httpx.HTTPStatusError as err:
                logger.warning(
                    "user_directory.rejected",
                    user_id=user_id,
                    status_code=err.response.status_code,
                )
                raise UserDirectoryError(
                    f"User service answered {err.response.status_code} for {user_id}",
                    user_id=user_id,
                ) from err
            except httpx.HTTPError as err:
                logger.warning("user_directory.unreachable", user_id=user_id, error=str(err))
                raise UserDirectoryError(
                    f"User service unreachable: {err}", user_id=user_id
                ) from err
            except ValueError as err:
                raise UserDirectoryError(
                    f"User service returned invalid JSON for {user_id}", user_id=user_id
                ) from err

        return UserProfile(
            id=str(data.get("id", user_id)),
            name=data.get("name") or user_id,
            pix_key=data.get("pixKey") or data.get("pix_key"),
        )


class InMemoryUserDirectory:
    """Dictionary-backed directory for tests and local simulation."""

    def __init__(self, users: list[UserProfile] | None = None) -> None:
        self._users = {u.id: u for u in users or []}

    def add(self, user: UserProfile) -> None:
        self._users[user.id] = user

    async def get_user(self, user_id: str) -> UserProfile | None:
        return self._users.get(user_id)
