"""
EIP-712 typed-data struct signed to obtain feed credentials.
"""

from poly_eip712_structs import EIP712Struct, Address, String, Uint


class ClobAuth(EIP712Struct):
    """Key-issuance attestation signed with the wallet key (L1 auth)."""
    address = Address()
    timestamp = String()
    nonce = Uint()
    message = String()


CLOB_AUTH_DOMAIN = "ClobAuthDomain"
CLOB_AUTH_VERSION = "1"
CLOB_AUTH_MESSAGE = "This message attests that I control the given wallet"
