from __future__ import annotations

from typing import Any, List, Optional

import pytest

from app.core.errors import ConfigurationError
from app.workers import digest_worker
from services.digest_service import DigestResult


class DummyBriefing:
    def __init__(self) -> None:
        self.closed = False

    async def aclose(self) -> None:
        self.closed = True


class DummyDigest:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self.calls: List[dict] = []

    async def dispatch(self, *, refresh: bool = False, dry_run: bool = False) -> DigestResult:
        self.calls.append({"refresh": refresh, "dry_run": dry_run})
        if self.error is not None:
            raise self.error
        return DigestResult(recipients=["a@example.com"], message_ids=[] if dry_run else ["m1"], dry_run=dry_run)


def _patch(monkeypatch, digest: DummyDigest) -> DummyBriefing:
    briefing = DummyBriefing()
    monkeypatch.setattr(digest_worker, "build_briefing_service", lambda cfg: briefing)

    def fake_build_digest(b: Any, cfg: Any) -> DummyDigest:
        assert b is briefing
        return digest

    monkeypatch.setattr(digest_worker, "build_digest_service", fake_build_digest)
    return briefing


def test_parse_args_flags():
    args = digest_worker.parse_args(["--refresh", "--dry-run"])
    assert args.refresh is True
    assert args.dry_run is True

    defaults = digest_worker.parse_args([])
    assert defaults.refresh is False and defaults.dry_run is False


@pytest.mark.asyncio
async def test_main_async_success(monkeypatch):
    digest = DummyDigest()
    briefing = _patch(monkeypatch, digest)

    code = await digest_worker.main_async(["--dry-run"])

    assert code == 0
    assert digest.calls == [{"refresh": False, "dry_run": True}]
    assert briefing.closed is True


@pytest.mark.asyncio
@pytest.mark.parametrize("error", [ConfigurationError("No digest recipients configured (EMAIL_TO)"), OSError("smtp down")])
async def test_main_async_failure_exit_code(monkeypatch, error):
    briefing = _patch(monkeypatch, DummyDigest(error=error))

    code = await digest_worker.main_async(["--refresh"])

    assert code == 1
    assert briefing.closed is True
