"""Shared fixtures for oauth-gate tests."""

import pytest
import yaml

from oauth_gate.exceptions import AuthenticationError
from oauth_gate.provider import Identity


class FakeVerifier:
    """Token verifier that accepts a fixed set of token values."""

    def __init__(self, valid_tokens=("valid-token",)):
        self.valid_tokens = set(valid_tokens)
        self.calls = []

    async def verify(self, token):
        self.calls.append(token)
        if token.value not in self.valid_tokens:
            raise AuthenticationError("Access token is not active")
        return Identity(subject="alice", scopes=["openid"])


@pytest.fixture
def fake_verifier():
    return FakeVerifier()


@pytest.fixture
def sample_config_data():
    return {
        "oauth": {
            "clientId": "my-client",
            "clientSecret": "my-secret",
            "scopes": ["openid", "email"],
            "discloseUnauthorizedReason": False,
            "provider": {
                "authorization": "https://idp.example.com/authorize",
                "userInfo": "https://idp.example.com/userinfo",
            },
        }
    }


@pytest.fixture
def sample_config_yaml(tmp_path, sample_config_data):
    config_file = tmp_path / "config.yaml"
    config_file.write_text(yaml.dump(sample_config_data))
    return config_file
