"""
Tests for L1/L2 authentication and credential providers.
"""

import base64
import hashlib
import hmac
from unittest.mock import Mock

import pytest
from eth_account import Account

from pmstream.auth import (
    Authenticator,
    ClobCredentialProvider,
    CredentialProvider,
    StaticCredentialProvider,
    address_from_key,
    build_hmac_signature,
    credentials_from_response,
)
from pmstream.exceptions import APIError, AuthenticationError
from pmstream.tests.conftest import TEST_PRIVATE_KEY

API_KEY_RESPONSE = {
    "apiKey": "derived-key",
    "secret": "c2VjcmV0LXNlY3JldC1zZWNyZXQtc2VjcmV0LTEyMw==",
    "passphrase": "derived-pass",
}


class TestHmacSignature:

    def test_matches_reference_computation(self, credentials):
        expected = base64.urlsafe_b64encode(
            hmac.new(
                base64.urlsafe_b64decode(credentials.secret),
                b"1700000000GET/data/trades",
                hashlib.sha256
            ).digest()
        ).decode()

        assert build_hmac_signature(credentials.secret, 1700000000, "get", "/data/trades") == expected

    def test_body_quotes_normalised(self, credentials):
        single = build_hmac_signature(credentials.secret, 1, "POST", "/x", "{'a': 1}")
        double = build_hmac_signature(credentials.secret, 1, "POST", "/x", '{"a": 1}')
        assert single == double

    def test_body_changes_signature(self, credentials):
        assert (
            build_hmac_signature(credentials.secret, 1, "POST", "/x", "{}")
            != build_hmac_signature(credentials.secret, 1, "POST", "/x")
        )


class TestAuthenticator:

    def test_address_from_key(self):
        assert address_from_key(TEST_PRIVATE_KEY) == Account.from_key(TEST_PRIVATE_KEY).address

    def test_invalid_key_not_echoed(self):
        with pytest.raises(AuthenticationError) as exc_info:
            address_from_key("0xnot-a-key")
        assert "not-a-key" not in str(exc_info.value)

    def test_l1_headers(self):
        headers = Authenticator().create_l1_headers(TEST_PRIVATE_KEY, timestamp=1700000000, nonce=3)

        assert headers["POLY_ADDRESS"] == Account.from_key(TEST_PRIVATE_KEY).address
        assert headers["POLY_TIMESTAMP"] == "1700000000"
        assert headers["POLY_NONCE"] == "3"
        signature = headers["POLY_SIGNATURE"]
        assert signature.startswith("0x")
        assert len(signature) == 132

    def test_l1_signature_deterministic(self):
        auth = Authenticator()
        first = auth.create_l1_headers(TEST_PRIVATE_KEY, timestamp=1, nonce=0)
        second = auth.create_l1_headers(TEST_PRIVATE_KEY, timestamp=1, nonce=0)
        other_nonce = auth.create_l1_headers(TEST_PRIVATE_KEY, timestamp=1, nonce=1)

        assert first["POLY_SIGNATURE"] == second["POLY_SIGNATURE"]
        assert first["POLY_SIGNATURE"] != other_nonce["POLY_SIGNATURE"]

    def test_l1_signature_depends_on_chain(self):
        polygon = Authenticator(chain_id=137).create_l1_headers(TEST_PRIVATE_KEY, timestamp=1)
        amoy = Authenticator(chain_id=80002).create_l1_headers(TEST_PRIVATE_KEY, timestamp=1)
        assert polygon["POLY_SIGNATURE"] != amoy["POLY_SIGNATURE"]

    def test_l2_headers(self, credentials):
        auth = Authenticator()
        headers = auth.create_l2_headers("0xabc", credentials, "GET", "/data/trades", timestamp=1700000000)

        assert headers["POLY_ADDRESS"] == "0xabc"
        assert headers["POLY_API_KEY"] == credentials.key
        assert headers["POLY_PASSPHRASE"] == credentials.passphrase
        assert headers["POLY_TIMESTAMP"] == "1700000000"
        assert auth.verify_l2_signature(
            credentials.secret, headers["POLY_SIGNATURE"], 1700000000, "GET", "/data/trades"
        )
        assert not auth.verify_l2_signature(
            credentials.secret, headers["POLY_SIGNATURE"], 1700000001, "GET", "/data/trades"
        )

    def test_l2_bad_secret(self, credentials):
        broken = credentials.model_copy(update={"secret": "not base64!"})
        with pytest.raises(AuthenticationError, match="L2 signature failed"):
            Authenticator().create_l2_headers("0xabc", broken, "GET", "/data/trades")


class TestCredentialsFromResponse:

    def test_api_key_field(self):
        creds = credentials_from_response(API_KEY_RESPONSE)
        assert creds.key == "derived-key"
        assert creds.passphrase == "derived-pass"

    def test_key_field(self):
        data = dict(API_KEY_RESPONSE)
        data["key"] = data.pop("apiKey")
        assert credentials_from_response(data).key == "derived-key"

    def test_missing_fields(self):
        with pytest.raises(AuthenticationError, match="secret, passphrase"):
            credentials_from_response({"apiKey": "k"})

    def test_not_a_dict(self):
        with pytest.raises(AuthenticationError):
            credentials_from_response(["k"])

    def test_secret_hidden_from_repr(self):
        creds = credentials_from_response(API_KEY_RESPONSE)
        assert API_KEY_RESPONSE["secret"] not in repr(creds)
        assert "derived-pass" not in repr(creds)


class TestClobCredentialProvider:

    def make_provider(self):
        clob = Mock()
        authenticator = Mock()
        authenticator.create_l1_headers.return_value = {"POLY_ADDRESS": "0xabc"}
        return ClobCredentialProvider(clob, authenticator, nonce=2), clob, authenticator

    def test_derives_existing_key(self):
        provider, clob, authenticator = self.make_provider()
        clob.derive_api_key.return_value = API_KEY_RESPONSE

        creds = provider.derive_credentials(TEST_PRIVATE_KEY)

        assert creds.key == "derived-key"
        clob.create_api_key.assert_not_called()
        authenticator.create_l1_headers.assert_called_once_with(TEST_PRIVATE_KEY, nonce=2)

    def test_falls_back_to_create(self):
        provider, clob, authenticator = self.make_provider()
        clob.derive_api_key.side_effect = APIError("not found", status_code=404)
        clob.create_api_key.return_value = dict(API_KEY_RESPONSE, apiKey="created-key")

        creds = provider.derive_credentials(TEST_PRIVATE_KEY)

        assert creds.key == "created-key"
        # Fresh L1 headers for the second request
        assert authenticator.create_l1_headers.call_count == 2

    def test_incomplete_derive_response_falls_back(self):
        provider, clob, _ = self.make_provider()
        clob.derive_api_key.return_value = {"apiKey": "k"}
        clob.create_api_key.return_value = API_KEY_RESPONSE

        assert provider.derive_credentials(TEST_PRIVATE_KEY).key == "derived-key"

    def test_create_failure_is_authentication_error(self):
        provider, clob, _ = self.make_provider()
        clob.derive_api_key.side_effect = APIError("boom", status_code=500)
        clob.create_api_key.side_effect = APIError("boom", status_code=500)

        with pytest.raises(AuthenticationError, match="Failed to create API key"):
            provider.derive_credentials(TEST_PRIVATE_KEY)

    def test_create_rejected(self):
        provider, clob, _ = self.make_provider()
        clob.derive_api_key.side_effect = AuthenticationError("401")
        clob.create_api_key.side_effect = AuthenticationError("401")

        with pytest.raises(AuthenticationError, match="401"):
            provider.derive_credentials(TEST_PRIVATE_KEY)

    @pytest.mark.parametrize("key", [None, ""])
    def test_signing_key_required(self, key):
        provider, clob, _ = self.make_provider()
        with pytest.raises(AuthenticationError):
            provider.derive_credentials(key)
        clob.derive_api_key.assert_not_called()

    def test_is_credential_provider(self):
        provider, _, _ = self.make_provider()
        assert isinstance(provider, CredentialProvider)


class TestStaticCredentialProvider:

    def test_returns_given_credentials(self, credentials):
        provider = StaticCredentialProvider(credentials)
        assert provider.derive_credentials(None) is credentials
        assert isinstance(provider, CredentialProvider)
