"""
Credential providers for the authenticated (user) feed channel.

A provider turns a wallet signing key into an API key triple. The CLOB
provider derives the existing key for the wallet and creates one if none
exists yet.
"""

from typing import TYPE_CHECKING, Any, Optional, Protocol, runtime_checkable
import logging

from .authenticator import Authenticator, address_from_key
from ..exceptions import AuthenticationError, PolymarketError
from ..models import ApiCredentials

if TYPE_CHECKING:
    from ..api.clob import CLOBAPI

logger = logging.getLogger(__name__)


@runtime_checkable
class CredentialProvider(Protocol):
    """Issues API credentials for a signing key."""

    def derive_credentials(self, signing_key: Optional[str]) -> ApiCredentials:
        """
        Raises:
            AuthenticationError: If credentials cannot be issued
        """
        ...


def credentials_from_response(data: Any) -> ApiCredentials:
    """
    Build credentials from an ``/auth/*`` response body.

    Raises:
        AuthenticationError: If a field is missing or empty
    """
    if not isinstance(data, dict):
        raise AuthenticationError("Unexpected API key response")

    fields = {
        "key": data.get("apiKey") or data.get("key"),
        "secret": data.get("secret"),
        "passphrase": data.get("passphrase"),
    }
    missing = [name for name, value in fields.items() if not value]
    if missing:
        raise AuthenticationError(f"API key response missing: {', '.join(missing)}")
    return ApiCredentials(**fields)


class ClobCredentialProvider:
    """
    Derives credentials through the CLOB REST API with L1 auth.

    Tries ``GET /auth/derive-api-key`` first and falls back to
    ``POST /auth/api-key`` when derivation fails.
    """

    def __init__(self, clob: "CLOBAPI", authenticator: Optional[Authenticator] = None, nonce: int = 0):
        """
        Initialize provider.

        Args:
            clob: CLOB REST client
            authenticator: L1 header builder (chain 137 if None)
            nonce: Key nonce (the same nonce derives the same key)
        """
        self.clob = clob
        self.authenticator = authenticator or Authenticator()
        self.nonce = nonce

    def derive_credentials(self, signing_key: Optional[str]) -> ApiCredentials:
        if not signing_key:
            raise AuthenticationError("Signing key required to derive API credentials")

        address = address_from_key(signing_key)

        try:
            headers = self.authenticator.create_l1_headers(signing_key, nonce=self.nonce)
            credentials = credentials_from_response(self.clob.derive_api_key(headers))
            logger.info(f"Derived API key for {address}")
            return credentials
        except PolymarketError as e:
            logger.warning(f"API key derivation failed for {address}, creating: {type(e).__name__}")

        # Fresh timestamp: the derive attempt may have taken a while
        headers = self.authenticator.create_l1_headers(signing_key, nonce=self.nonce)
        try:
            credentials = credentials_from_response(self.clob.create_api_key(headers))
        except AuthenticationError:
            raise
        except PolymarketError as e:
            raise AuthenticationError(f"Failed to create API key: {e}") from e

        logger.info(f"Created API key for {address}")
        return credentials


class StaticCredentialProvider:
    """Returns credentials the caller already holds."""

    def __init__(self, credentials: ApiCredentials):
        self.credentials = credentials

    def derive_credentials(self, signing_key: Optional[str] = None) -> ApiCredentials:
        return self.credentials
