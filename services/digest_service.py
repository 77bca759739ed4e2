# services/digest_service.py
"""
Scheduled FX briefing digest: render the cached report and mail it.

Templates live in templates/emails/ (`fx_digest.html.j2`, `fx_digest.txt.j2`)
and are rendered with HTML autoescaping, since every field comes from model
output or third-party news titles.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

from jinja2 import Environment, FileSystemLoader, select_autoescape

from app.config import Settings, settings
from app.core.errors import ConfigurationError
from app.core.logging import get_logger
from app.models.fx_analysis import AnalysisReport
from services.briefing_service import BriefingService
from services.email import EmailProvider, ResendEmailProvider, SMTPEmailProvider

logger = get_logger().bind(module="digest_service")

TEMPLATES_DIR = Path(__file__).resolve().parent.parent / "templates" / "emails"
TEMPLATE_NAME = "fx_digest"
SUBJECT_PREFIX = "[FX Briefing]"
MAX_LISTED_SOURCES = 15

_DIRECTION_LABELS = {
    "up": "상승 (원화 약세)",
    "down": "하락 (원화 강세)",
    "stable": "보합세",
    "uncertain": "불확실",
}

_SENTIMENT_LABELS = {
    "positive": "긍정적",
    "negative": "부정적",
    "neutral": "중립적",
}

_IMPACT_COLORS = {
    "positive": "#22c55e",
    "negative": "#ef4444",
}


def _date_filter(value: Any, format_string: str = "%Y-%m-%d") -> str:
    if isinstance(value, datetime):
        return value.strftime(format_string)
    return str(value)


def _impact_color(impact: str) -> str:
    return _IMPACT_COLORS.get(impact, "#6b7280")


@dataclass(frozen=True)
class RenderedDigest:
    subject: str
    html_body: str
    text_body: str


@dataclass
class DigestResult:
    recipients: List[str]
    message_ids: List[str] = field(default_factory=list)
    cached: bool = False
    dry_run: bool = False


def build_email_provider(cfg: Optional[Settings] = None) -> EmailProvider:
    cfg = cfg or settings
    name = (cfg.EMAIL_PROVIDER or "smtp").strip().lower()
    if name == "resend":
        return ResendEmailProvider(
            api_key=cfg.RESEND_API_KEY,
            from_email=cfg.EMAIL_FROM,
            from_name=cfg.EMAIL_FROM_NAME,
            timeout_s=cfg.HTTP_TIMEOUT_S,
        )
    if name != "smtp":
        raise ConfigurationError(f"Unknown EMAIL_PROVIDER '{cfg.EMAIL_PROVIDER}'")
    return SMTPEmailProvider(
        smtp_host=cfg.SMTP_HOST,
        smtp_port=cfg.SMTP_PORT,
        smtp_user=cfg.SMTP_USER,
        smtp_password=cfg.SMTP_PASSWORD,
        from_email=cfg.EMAIL_FROM,
        from_name=cfg.EMAIL_FROM_NAME,
    )


class DigestService:
    def __init__(
        self,
        briefing: BriefingService,
        provider: EmailProvider,
        recipients: List[str],
        *,
        templates_dir: Optional[Path] = None,
    ) -> None:
        self.briefing = briefing
        self.provider = provider
        self.recipients = list(recipients)
        self.env = Environment(
            loader=FileSystemLoader(str(templates_dir or TEMPLATES_DIR)),
            autoescape=select_autoescape(["html", "xml", "html.j2"]),
            trim_blocks=True,
            lstrip_blocks=True,
        )
        self.env.filters["date"] = _date_filter
        self.env.filters["impact_color"] = _impact_color

    def render(self, report: AnalysisReport) -> RenderedDigest:
        context = {
            "report": report,
            "direction_label": _DIRECTION_LABELS.get(report.outlook.direction, report.outlook.direction),
            "sentiment_label": _SENTIMENT_LABELS.get(report.sentiment.overall, report.sentiment.overall),
            "shown_sources": report.sources[:MAX_LISTED_SOURCES],
            "hidden_sources": max(0, len(report.sources) - MAX_LISTED_SOURCES),
        }
        html_body = self.env.get_template(f"{TEMPLATE_NAME}.html.j2").render(**context)
        text_body = self.env.get_template(f"{TEMPLATE_NAME}.txt.j2").render(**context)
        return RenderedDigest(
            subject=f"{SUBJECT_PREFIX} {report.title}",
            html_body=html_body,
            text_body=text_body,
        )

    def _ensure_ready(self) -> None:
        if not self.recipients:
            raise ConfigurationError("No digest recipients configured (EMAIL_TO)")
        if not self.provider.is_configured():
            raise ConfigurationError(f"Email provider {type(self.provider).__name__} is not configured")

    async def dispatch(self, *, refresh: bool = False, dry_run: bool = False) -> DigestResult:
        """
        Fetch the (cached) report and send one mail per recipient.

        Configuration is checked before the report is requested. A failed send
        propagates after the earlier recipients have already been mailed.
        """
        self._ensure_ready()

        lookup = await self.briefing.get_analysis(refresh=refresh)
        rendered = self.render(lookup.value)
        result = DigestResult(recipients=list(self.recipients), cached=lookup.cached, dry_run=dry_run)

        if dry_run:
            logger.info(
                "digest_dry_run",
                recipients=len(self.recipients),
                subject=rendered.subject,
                html_chars=len(rendered.html_body),
            )
            return result

        for recipient in self.recipients:
            message_id = await self.provider.send_email(
                to=recipient,
                subject=rendered.subject,
                html_body=rendered.html_body,
                text_body=rendered.text_body,
            )
            result.message_ids.append(message_id)

        logger.info(
            "digest_dispatched",
            recipients=len(self.recipients),
            messages=len(result.message_ids),
            cached=lookup.cached,
        )
        return result


def build_digest_service(briefing: BriefingService, cfg: Optional[Settings] = None) -> DigestService:
    cfg = cfg or settings
    return DigestService(briefing, build_email_provider(cfg), cfg.email_recipients)
