#!/usr/bin/env python3
"""Linear Mirror auth E2E sandbox runner.

This is a fast, hermetic integration test that validates:
- /health remains publicly accessible when auth is enabled
- /webhook bypasses Basic auth and is guarded by its signature instead
- all other routes return 401 without Authorization
- valid Authorization succeeds

It is intentionally executed in a separate process to ensure the app reads auth
configuration from environment variables before import-time initialization.

Run:
  python3 scripts/e2e_auth_sandbox.py
"""

from __future__ import annotations

import base64
import hashlib
import hmac
import json
import os
import sys
import tempfile
from pathlib import Path

# Ensure repository root is importable
_REPO_ROOT = Path(__file__).resolve().parents[1]
if str(_REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(_REPO_ROOT))


def _basic(user: str, password: str) -> str:
    token = base64.b64encode(f"{user}:{password}".encode("utf-8")).decode("ascii")
    return f"Basic {token}"


def main() -> int:
    workdir = tempfile.mkdtemp(prefix="linear-mirror-e2e-")

    # Force auth on, keep everything local
    os.environ["AUTH_ENABLED"] = "true"
    os.environ["AUTH_USERNAME"] = "e2e"
    os.environ["AUTH_PASSWORD"] = "secret"
    os.environ["WEBHOOK_SECRET"] = "hook-secret"
    os.environ["SYNC_INTERVAL_MINUTES"] = "0"
    os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(workdir, 'e2e.db')}"
    os.environ.pop("LINEAR_API_KEY", None)

    from fastapi.testclient import TestClient

    from app.main import app

    with TestClient(app) as client:
        # /health is allowlisted
        r = client.get("/health")
        if r.status_code != 200:
            print(f"[e2e-auth] /health expected 200, got {r.status_code}: {r.text}")
            return 2

        # API should be protected
        r1 = client.get("/api/sync/logs")
        if r1.status_code != 401:
            print(f"[e2e-auth] /api/sync/logs expected 401, got {r1.status_code}: {r1.text}")
            return 2

        # With valid auth, should succeed (200 + JSON)
        r2 = client.get("/api/sync/logs", headers={"Authorization": _basic("e2e", "secret")})
        if r2.status_code != 200:
            print(f"[e2e-auth] authed /api/sync/logs expected 200, got {r2.status_code}: {r2.text}")
            return 2

        # Wrong password should still be 401
        r3 = client.get("/api/sync/logs", headers={"Authorization": _basic("e2e", "wrong")})
        if r3.status_code != 401:
            print(f"[e2e-auth] wrong password expected 401, got {r3.status_code}: {r3.text}")
            return 2

        # Signed webhook needs no Basic auth
        body = json.dumps({"action": "create", "type": "Comment", "data": {"id": "c1"}}).encode("utf-8")
        signature = hmac.new(b"hook-secret", body, hashlib.sha256).hexdigest()
        r4 = client.post(
            "/webhook",
            content=body,
            headers={"linear-signature": signature, "Content-Type": "application/json"},
        )
        if r4.status_code != 200 or r4.json().get("status") != "ignored":
            print(f"[e2e-auth] signed /webhook expected 200 ignored, got {r4.status_code}: {r4.text}")
            return 2

        # Unsigned webhook is rejected by the signature check
        r5 = client.post("/webhook", content=body, headers={"Content-Type": "application/json"})
        if r5.status_code != 401:
            print(f"[e2e-auth] unsigned /webhook expected 401, got {r5.status_code}: {r5.text}")
            return 2

    print("[e2e-auth] OK")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
