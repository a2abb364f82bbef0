"""Tests for remote input acquisition (retries, cache, placeholder)."""

import time

import httpx
import pytest

from conftest import png_bytes

from buildmend.acquisition import Acquirer
from buildmend.artifacts import SourceSpec
from buildmend.config import NetworkConfig
from buildmend.errors import AcquisitionError

LOGO = png_bytes((128, 128))
URL = "https://cdn.example.com/logo.png"


def fast(attempts: int = 3) -> NetworkConfig:
    return NetworkConfig(timeout=1.0, attempts=attempts, backoff_factor=0.0, max_backoff_wait=0.01)


class Script:
    """MockTransport handler replaying a fixed list of outcomes."""

    def __init__(self, *outcomes):
        self.outcomes = list(outcomes)
        self.calls = 0

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.calls += 1
        outcome = self.outcomes.pop(0) if len(self.outcomes) > 1 else self.outcomes[0]
        if outcome == "timeout":
            raise httpx.ReadTimeout("read timed out", request=request)
        if isinstance(outcome, int):
            return httpx.Response(outcome, request=request)
        return httpx.Response(200, content=outcome, request=request)


def acquirer(script: Script, **kwargs) -> Acquirer:
    kwargs.setdefault("network", fast())
    return Acquirer(transport=httpx.MockTransport(script), **kwargs)


def test_download_success():
    script = Script(LOGO)
    with acquirer(script) as acq:
        result = acq.fetch(URL)
    assert result.data == LOGO
    assert result.origin == "network"
    assert script.calls == 1


def test_transient_errors_are_retried():
    script = Script(503, "timeout", LOGO)
    with acquirer(script) as acq:
        result = acq.fetch(URL)
    assert result.data == LOGO
    assert script.calls == 3


def test_timeout_gives_up_after_attempts():
    script = Script("timeout")
    with acquirer(script) as acq:
        with pytest.raises(AcquisitionError) as excinfo:
            acq.fetch(URL)
    assert excinfo.value.attempts == 3
    assert "timed out" in excinfo.value.reason
    assert script.calls == 3


def test_server_error_gives_up_after_attempts():
    script = Script(503)
    with acquirer(script, network=fast(attempts=2)) as acq:
        with pytest.raises(AcquisitionError, match="HTTP 503") as excinfo:
            acq.fetch(URL)
    assert excinfo.value.attempts == 2


def test_client_error_is_not_retried():
    script = Script(404)
    with acquirer(script) as acq:
        with pytest.raises(AcquisitionError, match="HTTP 404"):
            acq.fetch(URL)
    assert script.calls == 1


def test_empty_body_is_an_error():
    script = Script(b"")
    with acquirer(script) as acq:
        with pytest.raises(AcquisitionError, match="empty response body"):
            acq.fetch(URL)


def test_downloads_are_memoised_per_run():
    script = Script(LOGO)
    with acquirer(script) as acq:
        acq.fetch(URL)
        again = acq.fetch(URL)
    assert again.origin == "memo"
    assert script.calls == 1


def test_failed_url_is_tried_once_per_run():
    script = Script("timeout")
    with acquirer(script) as acq:
        for _ in range(20):
            with pytest.raises(AcquisitionError, match="timed out"):
                acq.fetch(URL)
    assert script.calls == 3


def test_retries_back_off_between_attempts(monkeypatch):
    delays = []
    monkeypatch.setattr(time, "sleep", delays.append)
    network = NetworkConfig(timeout=1.0, attempts=3, backoff_factor=0.5, max_backoff_wait=2.0)
    script = Script(503, "timeout", LOGO)
    with acquirer(script, network=network) as acq:
        assert acq.fetch(URL).data == LOGO
    assert script.calls == 3
    assert len(delays) == 2
    assert all(0 <= delay <= 2.0 for delay in delays)


def test_default_network_config_builds_a_client():
    with Acquirer(NetworkConfig()) as acq:
        assert acq.network.max_backoff_wait > 0


def test_cached_copy_used_when_offline(tmp_path):
    cache = tmp_path / "cache"
    with acquirer(Script(LOGO), cache_dir=cache) as acq:
        acq.fetch(URL)
    assert len(list(cache.iterdir())) == 1

    offline = Script("timeout")
    with acquirer(offline, cache_dir=cache) as acq:
        result = acq.fetch(URL)
    assert result.origin == "cache"
    assert result.data == LOGO
    assert "cached copy" in result.warnings[0]


def test_local_files(tmp_path):
    logo = tmp_path / "logo.png"
    logo.write_bytes(LOGO)
    script = Script(LOGO)
    with acquirer(script) as acq:
        assert acq.fetch(str(logo)).origin == "file"
        assert acq.fetch(logo.as_uri()).data == LOGO
        with pytest.raises(AcquisitionError, match="cannot read local file"):
            acq.fetch(str(tmp_path / "missing.png"))
    assert script.calls == 0


def test_unsupported_scheme():
    with acquirer(Script(LOGO)) as acq:
        with pytest.raises(AcquisitionError, match="unsupported scheme"):
            acq.fetch("ftp://example.com/logo.png")


def test_placeholder_when_url_flag_unset():
    script = Script(LOGO)
    with acquirer(script) as acq:
        result = acq.acquire(SourceSpec(url=None, fallback="placeholder", missing_flag="LOGO_URL"))
    assert result.origin == "placeholder"
    assert result.data.startswith(b"\x89PNG")
    assert "LOGO_URL is not set" in result.warnings[0]
    assert script.calls == 0


def test_no_url_without_fallback():
    with acquirer(Script(LOGO)) as acq:
        with pytest.raises(AcquisitionError, match="FIREBASE_CONFIG_IOS"):
            acq.acquire(SourceSpec(url=None, missing_flag="FIREBASE_CONFIG_IOS"))


def test_acquire_with_url_downloads():
    with acquirer(Script(LOGO)) as acq:
        assert acq.acquire(SourceSpec(url=URL, fallback="placeholder")).origin == "network"
