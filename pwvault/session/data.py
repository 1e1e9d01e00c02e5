from typing import Optional, Any
from datetime import datetime, timedelta, timezone
from collections.abc import Mapping
import orjson
from ..conf import (
    SESSION_USER_ID,
    SESSION_EMAIL,
    SESSION_SQL_TOKEN,
    SESSION_ROLE,
    SESSION_API_TOKEN,
    SESSION_EXPIRATION,
)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Session:
    """Authenticated principal.

    Holds the identity and tokens issued at login together with the
    absolute expiry. One SessionManager owns the instance while it is
    active; ``invalidate()`` wipes every field on logout or expiry.
    """

    def __init__(
        self,
        user_id: str,
        api_token: str,
        sql_token: str,
        expires_at: datetime,
        role: str = '',
        email: Optional[str] = None,
        created: Optional[datetime] = None
    ) -> None:
        self._user_id = user_id
        self._api_token = api_token
        self._sql_token = sql_token
        self._role = role
        self._email = email
        self._expires_at = _as_utc(expires_at)
        self._created = created or utcnow()

    def __repr__(self) -> str:
        # tokens are never rendered
        return (
            f'<PwVault-Session [user:{self._user_id}, '
            f'expires:{self._expires_at.isoformat() if self._expires_at else None}]>'
        )

    # --- Properties ---

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def email(self) -> Optional[str]:
        return self._email

    @property
    def role(self) -> Optional[str]:
        return self._role

    @property
    def api_token(self) -> Optional[str]:
        return self._api_token

    @property
    def sql_token(self) -> Optional[str]:
        return self._sql_token

    @property
    def expires_at(self) -> Optional[datetime]:
        return self._expires_at

    @expires_at.setter
    def expires_at(self, value: datetime) -> None:
        self._expires_at = _as_utc(value)

    @property
    def logon_time(self) -> datetime:
        return self._created

    @property
    def empty(self) -> bool:
        return not self._user_id and not self._api_token

    def is_authenticated(self, now: Optional[datetime] = None) -> bool:
        """True iff both tokens are present and the session has not expired."""
        if not self._api_token or not self._sql_token or not self._expires_at:
            return False
        return (now or utcnow()) < self._expires_at

    def remaining(self, now: Optional[datetime] = None) -> timedelta:
        if not self._expires_at:
            return timedelta(0)
        return max(timedelta(0), self._expires_at - (now or utcnow()))

    def invalidate(self) -> None:
        """Clear identity, tokens and expiry."""
        self._user_id = None
        self._api_token = None
        self._sql_token = None
        self._role = None
        self._email = None
        self._expires_at = None

    # --- Persistence ---

    def session_data(self) -> dict[str, str]:
        """Return the flat string mapping mirrored into the credential cache."""
        return {
            SESSION_USER_ID: self._user_id or '',
            SESSION_EMAIL: self._email or '',
            SESSION_SQL_TOKEN: self._sql_token or '',
            SESSION_ROLE: self._role or '',
            SESSION_API_TOKEN: self._api_token or '',
            SESSION_EXPIRATION: (
                self._expires_at.isoformat() if self._expires_at else ''
            ),
        }

    @classmethod
    def from_storage(cls, data: Mapping[str, Any]) -> Optional['Session']:
        """Rebuild a session from persisted fields.

        Returns None when the user id, api token or expiry is missing or
        the expiry cannot be parsed.
        """
        user_id = data.get(SESSION_USER_ID)
        api_token = data.get(SESSION_API_TOKEN)
        expiration = data.get(SESSION_EXPIRATION)
        if not user_id or not api_token or not expiration:
            return None
        try:
            expires_at = datetime.fromisoformat(expiration)
        except (TypeError, ValueError):
            return None
        return cls(
            user_id=user_id,
            api_token=api_token,
            sql_token=data.get(SESSION_SQL_TOKEN) or '',
            expires_at=expires_at,
            role=data.get(SESSION_ROLE) or '',
            email=data.get(SESSION_EMAIL) or None,
        )

    def encode(self) -> bytes:
        """encode

            Serialize the persisted fields using orjson.
        Raises:
            RuntimeError: Error converting data to json.

        Returns:
            bytes: json version of the session fields.
        """
        try:
            return orjson.dumps(self.session_data())
        except orjson.JSONEncodeError as err:
            raise RuntimeError(err) from err

    @classmethod
    def decode(cls, payload: bytes) -> Optional['Session']:
        try:
            data = orjson.loads(payload)
        except orjson.JSONDecodeError as err:
            raise RuntimeError(err) from err
        if not isinstance(data, dict):
            return None
        return cls.from_storage(data)
