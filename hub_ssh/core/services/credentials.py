"""
Credential resolution for connect requests.

Turns either an inline credential set or a stored-profile identifier into a
validated ``ConnectionDescriptor``. Resolution is a pure lookup: nothing is
opened and nothing is written, so failures here never need cleanup.
"""

from typing import Any, Optional

from ..domain.descriptor import AuthKind, ConnectionDescriptor, DEFAULT_SSH_PORT, StoredProfile
from ..domain.errors import InvalidInputError, MissingCredentialsError, NotFoundError
from ..domain.messages import ConnectRequest
from ..interfaces.profiles import IProfileStore


def parse_port(value: Any) -> int:
    """
    Parse a port value, defaulting to 22 when absent, zero or non-numeric.

    Raises:
        InvalidInputError: If the value is numeric but not a valid port
    """
    if value is None or isinstance(value, bool):
        return DEFAULT_SSH_PORT

    try:
        port = int(str(value).strip())
    except ValueError:
        return DEFAULT_SSH_PORT

    if port == 0:
        return DEFAULT_SSH_PORT
    if not (1 <= port <= 65535):
        raise InvalidInputError(f"Port must be between 1 and 65535, got {port}")
    return port


def _text(value: Any) -> Optional[str]:
    """Return a non-empty string or None."""
    if isinstance(value, str) and value.strip():
        return value
    return None


class CredentialResolver:
    """Resolves connect requests into connection descriptors."""

    def __init__(self, profile_store: Optional[IProfileStore] = None) -> None:
        self._profile_store = profile_store

    async def resolve(self, request: ConnectRequest) -> ConnectionDescriptor:
        """
        Resolve a connect request.

        Args:
            request: Parsed connect request

        Returns:
            Validated connection descriptor

        Raises:
            NotFoundError: Stored profile does not exist
            MissingCredentialsError: Stored profile lacks its secret
            InvalidInputError: Inline request is incomplete or malformed
        """
        profile_id = self.profile_id_of(request)
        if profile_id is not None:
            return await self._resolve_stored(profile_id)
        return self._resolve_inline(request)

    @staticmethod
    def profile_id_of(request: ConnectRequest) -> Optional[str]:
        """Stored profile identifier carried by a request, if any."""
        if request.session_id is None or isinstance(request.session_id, bool):
            return None
        profile_id = str(request.session_id).strip()
        return profile_id or None

    async def _resolve_stored(self, profile_id: str) -> ConnectionDescriptor:
        if self._profile_store is None:
            raise NotFoundError()

        profile = await self._profile_store.get_by_id(profile_id)
        if profile is None:
            raise NotFoundError()

        kind = AuthKind.parse(profile.auth)
        secret = self._secret_for(kind, profile.password, profile.private_key)
        if kind is None or secret is None:
            raise MissingCredentialsError()

        return self._build(
            host=profile.host,
            port=parse_port(profile.port),
            username=profile.username,
            kind=kind,
            secret=secret,
            passphrase=_text(profile.passphrase) if kind is AuthKind.PRIVATE_KEY else None,
            source=profile,
        )

    def _resolve_inline(self, request: ConnectRequest) -> ConnectionDescriptor:
        host = _text(request.host)
        username = _text(request.username)
        if host is None or username is None:
            raise InvalidInputError("Host and username are required")

        port = parse_port(request.port)

        password = _text(request.password)
        private_key = _text(request.private_key)

        if request.auth is not None:
            kind = AuthKind.parse(request.auth)
        elif password is not None and private_key is None:
            kind = AuthKind.PASSWORD
        elif private_key is not None and password is None:
            kind = AuthKind.PRIVATE_KEY
        else:
            kind = None

        secret = self._secret_for(kind, password, private_key)
        if kind is None or secret is None:
            raise InvalidInputError("Authentication method not provided or invalid")

        return self._build(
            host=host.strip(),
            port=port,
            username=username.strip(),
            kind=kind,
            secret=secret,
            passphrase=_text(request.passphrase) if kind is AuthKind.PRIVATE_KEY else None,
        )

    @staticmethod
    def _secret_for(
        kind: Optional[AuthKind],
        password: Optional[str],
        private_key: Optional[str]
    ) -> Optional[str]:
        if kind is AuthKind.PASSWORD:
            return _text(password)
        if kind is AuthKind.PRIVATE_KEY:
            return _text(private_key)
        return None

    @staticmethod
    def _build(
        host: Any,
        port: int,
        username: Any,
        kind: AuthKind,
        secret: str,
        passphrase: Optional[str],
        source: Optional[StoredProfile] = None
    ) -> ConnectionDescriptor:
        try:
            return ConnectionDescriptor(
                host=host,
                port=port,
                username=username,
                auth_kind=kind,
                secret=secret,
                passphrase=passphrase,
            )
        except (TypeError, ValueError) as e:
            if source is not None:
                raise MissingCredentialsError(
                    f"Stored session {source.profile_id} is incomplete") from e
            raise InvalidInputError(str(e)) from e
