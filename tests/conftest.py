from __future__ import annotations

import io
import sys
from pathlib import Path

import pytest
from dotenv import load_dotenv
from PIL import Image

_PROJECT_ROOT = Path(__file__).resolve().parents[1]
_SRC = (_PROJECT_ROOT / "src").resolve()
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

# Load .env from project root so local BUILDMEND_* overrides are active
load_dotenv(_PROJECT_ROOT / ".env", override=False)


def png_bytes(size=(64, 64), mode="RGB", color="#336699") -> bytes:
    """Encode a solid test image as PNG."""
    image = Image.new(mode, size, color)
    buf = io.BytesIO()
    image.save(buf, format="PNG")
    return buf.getvalue()


@pytest.fixture()
def project(tmp_path: Path) -> Path:
    """Empty Flutter project root."""
    root = tmp_path / "app"
    root.mkdir()
    return root


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch):
    # the engine reads flags from os.environ; keep the developer's shell out of it
    for name in (
        "APP_NAME", "BUNDLE_ID", "PKG_NAME", "VERSION_NAME", "VERSION_CODE", "PROFILE_TYPE",
        "WORKFLOW_ID", "LOGO_URL", "FIREBASE_CONFIG_IOS", "FIREBASE_CONFIG_ANDROID",
        "PUSH_NOTIFY", "IS_CHATBOT", "IS_CAMERA", "IS_LOCATION", "IS_MIC", "IS_NOTIFICATION",
        "IS_CONTACT", "IS_BIOMETRIC", "IS_CALENDAR", "IS_STORAGE",
        "USER_NAME", "APP_ID", "ORG_NAME", "WEB_URL", "EMAIL_ID", "APPLE_TEAM_ID", "CM_BUILD_ID",
        "OUTPUT_DIR", "IS_DOMAIN_URL", "IS_SPLASH", "IS_PULLDOWN", "IS_BOTTOMMENU", "IS_LOAD_IND",
        "IS_GOOGLE_AUTH", "IS_APPLE_AUTH", "SPLASH_URL", "SPLASH_BG_URL", "SPLASH_BG_COLOR",
        "SPLASH_TAGLINE", "SPLASH_TAGLINE_COLOR", "SPLASH_TAGLINE_FONT", "SPLASH_TAGLINE_SIZE",
        "SPLASH_TAGLINE_BOLD", "SPLASH_TAGLINE_ITALIC", "SPLASH_ANIMATION", "SPLASH_DURATION",
        "BOTTOMMENU_ITEMS", "BOTTOMMENU_BG_COLOR", "BOTTOMMENU_ICON_COLOR", "BOTTOMMENU_TEXT_COLOR",
        "BOTTOMMENU_FONT", "BOTTOMMENU_FONT_SIZE", "BOTTOMMENU_FONT_BOLD", "BOTTOMMENU_FONT_ITALIC",
        "BOTTOMMENU_ACTIVE_TAB_COLOR", "BOTTOMMENU_ICON_POSITION", "BOTTOMMENU_VISIBLE_ON",
        "BUILDMEND_HTTP_TIMEOUT", "BUILDMEND_HTTP_ATTEMPTS", "BUILDMEND_HTTP_BACKOFF", "BUILDMEND_HTTP_MAX_WAIT",
        "BUILDMEND_LOG_DIR",
    ):
        monkeypatch.delenv(name, raising=False)
