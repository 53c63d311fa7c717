"""Authentication: L1/L2 request signing and feed credential providers."""

from .authenticator import Authenticator, address_from_key, build_hmac_signature
from .credentials import (
    CredentialProvider,
    ClobCredentialProvider,
    StaticCredentialProvider,
    credentials_from_response,
)

__all__ = [
    "Authenticator",
    "address_from_key",
    "build_hmac_signature",
    "CredentialProvider",
    "ClobCredentialProvider",
    "StaticCredentialProvider",
    "credentials_from_response",
]
