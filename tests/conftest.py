"""
Pytest configuration and shared fixtures.
"""

import json
import os

import pytest
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from common.config import GitHubSettings
from common.github_auth import compute_webhook_signature
from common.models import AppCredentials

WEBHOOK_SECRET = "test-webhook-secret"


@pytest.fixture(scope="session")
def rsa_key():
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


@pytest.fixture(scope="session")
def private_key_pem(rsa_key):
    return rsa_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.TraditionalOpenSSL,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode()


@pytest.fixture(scope="session")
def public_key_pem(rsa_key):
    return rsa_key.public_key().public_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PublicFormat.SubjectPublicKeyInfo,
    ).decode()


@pytest.fixture
def credentials(private_key_pem):
    return AppCredentials(
        app_id="12345",
        private_key=private_key_pem,
        webhook_secret=WEBHOOK_SECRET,
        client_id="Iv1.test",
        client_secret="client-secret",
    )


@pytest.fixture
def github_settings():
    return GitHubSettings(
        api_url="https://api.github.test",
        bot_username="ai-pr-reviewer-bot[bot]",
        timeout=5,
    )


@pytest.fixture
def sample_diff():
    return """diff --git a/app.js b/app.js
index 1234567..abcdefg 100644
--- a/app.js
+++ b/app.js
@@ -1,3 +1,4 @@
 const x = 1;
+ console.log(1)
"""


@pytest.fixture
def pull_request_event():
    """Minimal pull_request webhook payload."""
    return {
        "action": "opened",
        "number": 7,
        "pull_request": {
            "id": 1001,
            "number": 7,
            "title": "Add logging",
            "head": {"ref": "feature", "sha": "abc123"},
            "base": {"ref": "main", "sha": "def456"},
        },
        "repository": {
            "id": 55,
            "name": "widgets",
            "full_name": "octo/widgets",
            "owner": {"login": "octo"},
        },
        "installation": {"id": 42},
    }


def sign(payload: dict, secret: str = WEBHOOK_SECRET) -> tuple[bytes, str]:
    """Serialize a payload and return (raw body, x-hub-signature-256 header)."""
    raw = json.dumps(payload).encode()
    return raw, compute_webhook_signature(raw, secret)


@pytest.fixture(autouse=True)
def reset_environment(monkeypatch):
    """Keep settings classes from picking up the developer's environment."""
    for key in list(os.environ.keys()):
        if key.startswith(("GITHUB_", "OPENAI_", "LLM_", "LOGFIRE_")) or key in ("ENVIRONMENT", "LOG_LEVEL", "PORT", "ENABLE_LOGFIRE"):
            monkeypatch.delenv(key, raising=False)
