"""Redirect event schema passed from the redirect path to the click recorder."""

from datetime import datetime

from pydantic import BaseModel, Field, field_validator

from clicktrail.core.clock import to_naive_utc, utcnow

UTM_KEYS = ("utm_source", "utm_medium", "utm_campaign", "utm_term", "utm_content")


class RedirectContext(BaseModel):
    """One observed redirect, as captured by the redirect handler.

    Carried in-process to the recorder, or published as JSON on the Redis
    click channel. ``client_ip`` is transient: the recorder hashes it and
    never persists it.
    """

    short_code: str = Field(description="The short code that was accessed")
    client_ip: str | None = Field(default=None, description="Client IP address")
    user_agent: str | None = Field(default=None, description="HTTP User-Agent header")
    referrer: str | None = Field(default=None, description="HTTP Referer header")
    utm_params: dict[str, str] = Field(default_factory=dict)
    query_params: dict[str, str] = Field(default_factory=dict)
    session_id: str | None = Field(default=None, description="Visitor session identifier")
    timestamp: datetime = Field(
        default_factory=utcnow,
        description="UTC timestamp when the click occurred",
    )

    model_config = {"json_schema_extra": {"example": {
        "short_code": "abc123",
        "client_ip": "203.0.113.7",
        "user_agent": "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36",
        "referrer": "https://www.google.com/",
        "utm_params": {"utm_source": "newsletter"},
        "query_params": {},
        "session_id": "6f1c0e0a4c5e4b6f9d1f1f6c2b7f9e21",
        "timestamp": "2024-01-15T10:30:00",
    }}}

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return to_naive_utc(v)

    def utm(self, key: str) -> str | None:
        """UTM value from ``utm_params``, falling back to the raw query string."""
        return self.utm_params.get(key) or self.query_params.get(key) or None
