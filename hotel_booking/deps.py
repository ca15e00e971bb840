from dataclasses import dataclass, field
from functools import lru_cache
from urllib.parse import quote, unquote
from uuid import UUID

import httpx
from fastapi import Depends, Header, HTTPException, status

from hotel_booking import settings
from hotel_booking.scopes import ADMIN_SCOPE, HotelScope


@dataclass
class CurrentUser:
    id: UUID
    username: str
    scopes: list[str] = field(default_factory=list)

    @property
    def is_admin(self) -> bool:
        return ADMIN_SCOPE in self.scopes


def parse_identity(user_id: str, username: str, scopes: str) -> CurrentUser | None:
    """Build a CurrentUser from gateway header values; None if the id is invalid."""
    try:
        uid = UUID(user_id)
    except (ValueError, TypeError):
        return None
    return CurrentUser(
        id=uid,
        username=unquote(username),
        scopes=scopes.split(" ") if scopes else [],
    )


def get_current_user(
    x_user_id: str = Header(...),
    x_username: str = Header(...),
    x_user_scopes: str = Header(default=""),
) -> CurrentUser:
    """
    Reads the headers injected by the gateway after forwardAuth validation.
    The JWT has already been verified, so these headers are trusted as-is.
    NOTE: This only works behind the gateway. Run with that assumption.
    """
    user = parse_identity(x_user_id, x_username, x_user_scopes)
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid user identity from gateway",
        )
    return user


def require_scopes(*required: str):
    """
    Factory that returns a dependency enforcing one or more scopes.

    Usage:
        @router.get("/protected")
        async def route(user = Depends(require_scopes("bookings:read"))):
            ...
    """

    async def _dep(
        current_user: CurrentUser = Depends(get_current_user),
    ) -> CurrentUser:
        missing = [s for s in required if s not in current_user.scopes]
        if missing:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail=f"Missing required scopes: {', '.join(missing)}",
            )
        return current_user

    return _dep


# ---------------------------------------------------------------------------
# Pre-built scope dependencies
# ---------------------------------------------------------------------------

can_write_booking = require_scopes(HotelScope.WRITE)
can_admin_bookings = require_scopes(ADMIN_SCOPE, HotelScope.ADMIN)
can_manage_rooms = require_scopes(ADMIN_SCOPE, HotelScope.ROOMS_MANAGE)


async def can_read_any_booking(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """
    Passes for customers with 'bookings:read' (own bookings) and for admins.
    """
    if not (HotelScope.READ in current_user.scopes or current_user.is_admin):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Requires '{HotelScope.READ}' or admin access.",
        )
    return current_user


async def can_cancel_any_booking(
    current_user: CurrentUser = Depends(get_current_user),
) -> CurrentUser:
    """Customers cancel with 'bookings:cancel'; admins always may."""
    if not (HotelScope.CANCEL in current_user.scopes or current_user.is_admin):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail=f"Requires '{HotelScope.CANCEL}' or admin access.",
        )
    return current_user


# ---------------------------------------------------------------------------
# UsersClient
# ---------------------------------------------------------------------------


@lru_cache(maxsize=1)
def _get_users_http_client() -> httpx.AsyncClient:
    return httpx.AsyncClient(
        base_url=settings.users_ms_url,
        timeout=httpx.Timeout(5.0),
        follow_redirects=True,
    )


class UsersClient:
    """
    Thin async wrapper around the users-ms internal API.
    Forwards gateway-injected user headers so users-ms auth deps work normally.
    """

    @property
    def _client(self) -> httpx.AsyncClient:
        return _get_users_http_client()

    def _headers(self, user: CurrentUser) -> dict[str, str]:
        return {
            "X-User-Id": str(user.id),
            "X-Username": quote(user.username),
            "X-User-Scopes": " ".join(user.scopes),
        }

    async def get_user(self, user_id: UUID, caller: CurrentUser) -> dict | None:
        """Returns user dict or None if 404. Raises HTTPException on other errors."""
        try:
            resp = await self._client.get(
                f"/users/{user_id}", headers=self._headers(caller)
            )
        except httpx.RequestError:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail="users-ms is unreachable",
            ) from None
        if resp.status_code == 404:
            return None
        if resp.status_code >= 400:
            raise HTTPException(
                status_code=status.HTTP_502_BAD_GATEWAY,
                detail=f"users-ms returned {resp.status_code}",
            )
        return resp.json()

    async def get_by_ids(self, user_ids: set[UUID], caller: CurrentUser) -> list[dict]:
        """Bulk-fetch users by ID for name enrichment. Fails silently."""
        if not user_ids:
            return []
        try:
            params = [("ids", str(uid)) for uid in user_ids]
            resp = await self._client.get(
                "/users/bulk", params=params, headers=self._headers(caller)
            )
            if resp.status_code >= 400 or not resp.content:
                return []
            return resp.json()
        except (httpx.RequestError, ValueError):
            return []


_users_client = UsersClient()


def get_users_client() -> UsersClient:
    return _users_client
