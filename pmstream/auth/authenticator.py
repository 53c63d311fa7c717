"""
Request authentication for the CLOB REST API.

L1: EIP-712 typed-data signature with the wallet key, used once to issue
    or derive an API key triple.
L2: HMAC-SHA256 signature with the API secret, used on every
    authenticated call afterwards.
"""

import time
import hmac
import hashlib
import base64
from typing import Optional
import logging

from poly_eip712_structs import make_domain
from eth_utils import keccak
from eth_account import Account

from .eip712_models import ClobAuth, CLOB_AUTH_DOMAIN, CLOB_AUTH_VERSION, CLOB_AUTH_MESSAGE
from ..models import ApiCredentials
from ..exceptions import AuthenticationError

logger = logging.getLogger(__name__)


def address_from_key(private_key: str) -> str:
    """
    Derive the checksummed signer address for a private key.

    Raises:
        AuthenticationError: If the key is malformed
    """
    try:
        return Account.from_key(private_key).address
    except (ValueError, TypeError) as e:
        # Never echo the key back
        raise AuthenticationError(f"Invalid private key: {type(e).__name__}") from None


def build_hmac_signature(
    secret: str,
    timestamp: int,
    method: str,
    path: str,
    body: Optional[str] = None
) -> str:
    """
    Build the L2 HMAC signature.

    Message is timestamp + METHOD + path (+ body), signed with the
    urlsafe-base64-decoded secret and returned urlsafe-base64 encoded.
    """
    message = str(timestamp) + method.upper() + path
    if body:
        # Single quotes are normalised so signatures match other SDKs
        message += str(body).replace("'", '"')

    digest = hmac.new(
        base64.urlsafe_b64decode(secret),
        message.encode("utf-8"),
        hashlib.sha256
    ).digest()
    return base64.urlsafe_b64encode(digest).decode("utf-8")


class Authenticator:
    """
    Builds L1 and L2 authentication headers.
    """

    def __init__(self, chain_id: int = 137):
        """
        Initialize authenticator.

        Args:
            chain_id: Polygon chain ID (default: 137)
        """
        self.chain_id = chain_id

    def sign_clob_auth(self, address: str, private_key: str, timestamp: int, nonce: int = 0) -> str:
        """Sign the ClobAuth typed-data struct, returning a 0x-prefixed signature."""
        domain = make_domain(
            name=CLOB_AUTH_DOMAIN,
            version=CLOB_AUTH_VERSION,
            chainId=self.chain_id
        )
        clob_auth_msg = ClobAuth(
            address=address,
            timestamp=str(timestamp),
            nonce=nonce,
            message=CLOB_AUTH_MESSAGE
        )
        struct_hash = keccak(clob_auth_msg.signable_bytes(domain))
        signed = Account.unsafe_sign_hash(struct_hash, private_key)
        return "0x" + signed.signature.hex().removeprefix("0x")

    def create_l1_headers(
        self,
        private_key: str,
        timestamp: Optional[int] = None,
        nonce: int = 0
    ) -> dict[str, str]:
        """
        Create L1 authentication headers.

        Args:
            private_key: Private key for signing
            timestamp: Unix timestamp (uses current time if None)
            nonce: Nonce value (default: 0)

        Returns:
            L1 headers dict

        Raises:
            AuthenticationError: If signing fails
        """
        address = address_from_key(private_key)
        if timestamp is None:
            timestamp = int(time.time())

        try:
            signature = self.sign_clob_auth(address, private_key, timestamp, nonce)
        except (ValueError, TypeError) as e:
            # SECURITY: error text could contain key material
            error_type = type(e).__name__
            logger.error(f"Failed to create L1 headers: {error_type}")
            raise AuthenticationError(f"L1 signature failed: {error_type}") from None

        logger.debug(f"Created L1 headers for {address}")
        return {
            "POLY_ADDRESS": address,
            "POLY_SIGNATURE": signature,
            "POLY_TIMESTAMP": str(timestamp),
            "POLY_NONCE": str(nonce),
        }

    def create_l2_headers(
        self,
        address: str,
        credentials: ApiCredentials,
        method: str,
        path: str,
        body: str = "",
        timestamp: Optional[int] = None
    ) -> dict[str, str]:
        """
        Create L2 authentication headers.

        Args:
            address: Wallet address
            credentials: API key triple
            method: HTTP method (GET, POST, DELETE, etc.)
            path: Request path
            body: Request body (JSON string)
            timestamp: Unix timestamp (uses current time if None)

        Returns:
            L2 headers dict

        Raises:
            AuthenticationError: If the secret is not valid base64
        """
        if timestamp is None:
            timestamp = int(time.time())

        try:
            signature = build_hmac_signature(credentials.secret, timestamp, method, path, body)
        except (ValueError, TypeError) as e:
            error_type = type(e).__name__
            logger.error(f"Failed to create L2 headers: {error_type}")
            raise AuthenticationError(f"L2 signature failed: {error_type}") from None

        logger.debug(f"Created L2 headers for {method} {path}")
        return {
            "POLY_ADDRESS": address,
            "POLY_SIGNATURE": signature,
            "POLY_TIMESTAMP": str(timestamp),
            "POLY_API_KEY": credentials.key,
            "POLY_PASSPHRASE": credentials.passphrase,
        }

    def verify_l2_signature(
        self,
        secret: str,
        signature: str,
        timestamp: int,
        method: str,
        path: str,
        body: str = ""
    ) -> bool:
        """Verify an L2 HMAC signature in constant time."""
        expected = build_hmac_signature(secret, timestamp, method, path, body)
        return hmac.compare_digest(signature, expected)
