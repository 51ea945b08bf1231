"""Masking of sensitive data before it is sent to a hosted model.

Three privacy levels control how aggressively values are replaced:
- strict: every match is replaced by a fixed marker, authors are removed
- moderate: emails become stable pseudonyms, secrets are redacted
- minimal: pseudonyms and partial masks keep text readable
"""

import hashlib
import json
import logging
import re
from collections.abc import Callable, Mapping
from dataclasses import replace
from typing import Any
from urllib.parse import urlsplit

from teampulse.models.activity import ActivityBundle, ActivityRecord
from teampulse.models.analysis import AnalysisContext
from teampulse.models.llm_config import VALID_PRIVACY_LEVELS

logger = logging.getLogger(__name__)

Replacement = str | Callable[[re.Match[str]], str]

# Applied in order; provider tokens come before the generic patterns
PATTERNS: dict[str, re.Pattern[str]] = {
    "github_token": re.compile(r"\bgh[ps]_[A-Za-z0-9_]{36,}\b"),
    "linear_token": re.compile(r"\blin_api_[A-Za-z0-9_]{40,}\b"),
    "slack_token": re.compile(r"\bxox[bpoa]-[A-Za-z0-9-]+"),
    "email": re.compile(
        r"\b[A-Za-z0-9._%+-]+@(?!github\.com|noreply)[A-Za-z0-9.-]+\.[A-Za-z]{2,}\b"
    ),
    "token": re.compile(r"\b(?:sk-|pk_)[A-Za-z0-9_-]{20,}\b"),
    "api_key": re.compile(
        r"\b(?:api[_-]?key|secret|token)[\"\s]*[:=][\"\s]*[A-Za-z0-9_-]{20,}\b",
        re.IGNORECASE,
    ),
    "phone_number": re.compile(
        r"\b(?:\+?1[-.\s]?)?\(?[2-9][0-9]{2}\)?[-.\s]?[2-9][0-9]{2}[-.\s]?[0-9]{4}\b"
    ),
    "social_security": re.compile(r"\b[0-9]{3}-[0-9]{2}-[0-9]{4}\b"),
    "credit_card": re.compile(
        r"\b(?:4[0-9]{12}(?:[0-9]{3})?|5[1-5][0-9]{14}|3[47][0-9]{13}|3[0-9]{13}"
        r"|6(?:011|5[0-9]{2})[0-9]{12})\b"
    ),
    "private_url": re.compile(
        r"https?://(?!api\.github\.com|github\.com)[^\s<>\"{}|\\^`\[\]]*"
        r"(?:password|token|key|secret)[^\s<>\"{}|\\^`\[\]]*",
        re.IGNORECASE,
    ),
}

_SLACK_USER = re.compile(r"<@U[A-Z0-9]+>")
_SLACK_CHANNEL = re.compile(r"<#C[A-Z0-9]+\|([^>]+)>")


def _pseudonym(value: str, length: int) -> str:
    return hashlib.sha256(value.lower().encode("utf-8")).hexdigest()[:length]


def _url_host(match: re.Match[str], suffix: str, fallback: str) -> str:
    parts = urlsplit(match.group(0))
    if not parts.scheme or not parts.hostname:
        return fallback
    return f"{parts.scheme}://{parts.hostname}/{suffix}"


REPLACEMENTS: dict[str, dict[str, Replacement]] = {
    "strict": {
        "github_token": "[GITHUB_TOKEN_REDACTED]",
        "linear_token": "[LINEAR_TOKEN_REDACTED]",
        "slack_token": "[SLACK_TOKEN_REDACTED]",
        "email": "[EMAIL_REDACTED]",
        "token": "[TOKEN_REDACTED]",
        "api_key": "[API_KEY_REDACTED]",
        "phone_number": "[PHONE_REDACTED]",
        "social_security": "[SSN_REDACTED]",
        "credit_card": "[CARD_REDACTED]",
        "private_url": "[URL_REDACTED]",
    },
    "moderate": {
        "github_token": "[GITHUB_TOKEN_REDACTED]",
        "linear_token": "[LINEAR_TOKEN_REDACTED]",
        "slack_token": "[SLACK_TOKEN_REDACTED]",
        "email": lambda m: f"[USER_{_pseudonym(m.group(0), 6)}]@[DOMAIN]",
        "token": "[TOKEN_REDACTED]",
        "api_key": "[API_KEY_REDACTED]",
        "phone_number": "[PHONE_REDACTED]",
        "social_security": "[SSN_REDACTED]",
        "credit_card": "[CARD_REDACTED]",
        "private_url": lambda m: _url_host(m, "[PATH_REDACTED]", "[URL_REDACTED]"),
    },
    "minimal": {
        "github_token": "[GITHUB_TOKEN]",
        "linear_token": "[LINEAR_TOKEN]",
        "slack_token": "[SLACK_TOKEN]",
        "email": lambda m: f"user_{_pseudonym(m.group(0), 4)}@company.com",
        "token": "[TOKEN]",
        "api_key": "[API_KEY]",
        "phone_number": lambda m: m.group(0)[:-4] + "XXXX",
        "social_security": "[SSN]",
        "credit_card": "[CARD]",
        "private_url": lambda m: _url_host(m, "...", "[URL]"),
    },
}


class DataSanitizer:
    """Masks sensitive values in activity data.

    Records are immutable, so every method returns sanitized copies.
    """

    def __init__(self, privacy_level: str = "moderate") -> None:
        """Initialize sanitizer.

        Raises:
            ValueError: If the privacy level is unknown
        """
        level = privacy_level.lower().strip()
        if level not in VALID_PRIVACY_LEVELS:
            raise ValueError(
                f"Invalid privacy_level '{privacy_level}'. "
                f"Must be one of: {sorted(VALID_PRIVACY_LEVELS)}"
            )
        self.privacy_level = level
        self._replacements = REPLACEMENTS[level]

    @property
    def strict(self) -> bool:
        return self.privacy_level == "strict"

    def sanitize_text(self, text: str | None) -> str:
        """Apply every pattern to a piece of text."""
        if not text:
            return text or ""
        sanitized = text
        for name, pattern in PATTERNS.items():
            sanitized = pattern.sub(self._replacements[name], sanitized)
        return sanitized

    def _sanitize_value(self, value: Any) -> Any:
        if isinstance(value, str):
            return self.sanitize_text(value)
        if isinstance(value, Mapping):
            return {k: self._sanitize_value(v) for k, v in value.items()}
        if isinstance(value, list | tuple):
            return [self._sanitize_value(v) for v in value]
        return value

    def sanitize_record(self, record: ActivityRecord) -> ActivityRecord:
        """Sanitized copy of one record."""
        body = self.sanitize_text(record.body)
        if record.kind == "message":
            body = _SLACK_USER.sub("@[USER]", body)
            body = _SLACK_CHANNEL.sub("#[CHANNEL]", body)

        attributes = self._sanitize_value(dict(record.attributes))
        if self.strict:
            for key in ("user", "channel", "assignee", "project", "team"):
                if key in attributes:
                    attributes[key] = f"[{key.upper()}_REDACTED]"
        if self.privacy_level != "minimal":
            attributes.pop("thread_ts", None)
            attributes.pop("avatar_url", None)

        return replace(
            record,
            title=self.sanitize_text(record.title),
            body=body,
            author="[USER_REDACTED]" if self.strict else self.sanitize_text(record.author),
            attributes=attributes,
        )

    def sanitize_bundle(self, bundle: ActivityBundle) -> ActivityBundle:
        """Sanitized copy of a bundle; sources without records are kept."""
        sanitized = ActivityBundle()
        for source in bundle.sources:
            sanitized.add_source(
                source, (self.sanitize_record(r) for r in bundle.records_for(source))
            )
        logger.debug(
            "Sanitized %d records at privacy level %s", len(sanitized), self.privacy_level
        )
        return sanitized

    def sanitize_context(self, context: AnalysisContext) -> AnalysisContext:
        """Copy of the context with repository and channel names masked in strict mode."""
        if not self.strict:
            return context
        return replace(
            context,
            team_members=["[USER_REDACTED]"] * len(context.team_members),
            repositories=["[REPO_REDACTED]"] * len(context.repositories),
            channels=["[CHANNEL_REDACTED]"] * len(context.channels),
        )

    def validate_sanitization(self, data: Any) -> dict[str, Any]:
        """Look for sensitive patterns that survived sanitization.

        Pseudonymized emails in minimal mode are reported as violations.

        Returns:
            Dictionary with is_clean and a list of violations
        """
        if isinstance(data, str):
            text = data
        elif isinstance(data, ActivityBundle):
            text = json.dumps(data.to_dict(), default=str)
        else:
            text = json.dumps(data, default=str)

        violations = []
        for name, pattern in PATTERNS.items():
            matches = pattern.findall(text)
            if matches:
                violations.append({"type": name, "count": len(matches), "examples": matches[:3]})

        return {"is_clean": not violations, "violations": violations}
