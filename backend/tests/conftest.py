import io
import os
import shutil
import tempfile
import uuid
from pathlib import Path

import pytest

# Point the app at a throwaway database and upload folder before it is imported.
_TMP = Path(tempfile.mkdtemp(prefix="studytrack-tests-"))
os.environ["ENV"] = "dev"
os.environ["DATABASE_URL"] = f"sqlite:///{_TMP / 'test.db'}"
os.environ["UPLOAD_DIR"] = str(_TMP / "uploads")
os.environ["RATE_LIMIT_MAX"] = "0"
os.environ["SMTP_HOST"] = ""
os.environ["FRONTEND_URL"] = "http://frontend.test"

from fastapi.testclient import TestClient  # noqa: E402
from PIL import Image  # noqa: E402

from studytrack.main import app  # noqa: E402
from studytrack.utils.mailer import get_mailer  # noqa: E402


class FakeMailer:
    """Records queued emails instead of talking to SMTP."""

    def __init__(self):
        self.sent = []

    def invite_link(self, token):
        return f"http://frontend.test/partners/accept/{token}"

    async def send_template(self, to_email, subject, template_name, context):
        self.sent.append({"to": to_email, "subject": subject, "template": template_name, "context": context})
        return {"success": True}


@pytest.fixture(scope="session", autouse=True)
def temp_workspace():
    """Remove the temporary database and uploads after the run."""
    yield _TMP
    shutil.rmtree(_TMP, ignore_errors=True)


@pytest.fixture(autouse=True)
def fake_mailer():
    fake = FakeMailer()
    app.dependency_overrides[get_mailer] = lambda: fake
    yield fake
    app.dependency_overrides.pop(get_mailer, None)


@pytest.fixture
def make_user():
    """Register a fresh user and return its auth headers and profile."""
    client = TestClient(app)

    def _make(name="Student", email=None, password="secret123"):
        email = email or f"user-{uuid.uuid4().hex[:10]}@example.com"
        r = client.post("/api/auth/register", json={"name": name, "email": email, "password": password})
        assert r.status_code == 201, r.text
        body = r.json()
        return {
            "headers": {"Authorization": f"Bearer {body['token']}"},
            "user": body["user"],
            "email": email,
            "password": password,
        }

    return _make


@pytest.fixture
def png_bytes():
    buf = io.BytesIO()
    Image.new("RGB", (4, 4), "red").save(buf, format="PNG")
    return buf.getvalue()
