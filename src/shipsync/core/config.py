"""Shared configuration classes for shipsync.

This module defines the retry budgets of both protocol phases and the
deployment target used by the client components.
"""

from __future__ import annotations

from dataclasses import dataclass, field

DEFAULT_HOST = "api.now.sh"
DEFAULT_PORT = 443


@dataclass(frozen=True)
class RetryConfig:
    """Retry budget and backoff for one protocol phase.

    Attributes:
        max_attempts: Total number of attempts, including the first one.
        min_delay: Delay in seconds before the first retry.
        factor: Multiplier applied to the delay after each retry.
        max_delay: Upper bound for a single delay (None for unbounded).
        jitter: Randomize each delay by a factor in [1, 2).
    """

    max_attempts: int
    min_delay: float
    factor: float = 1.0
    max_delay: float | None = None
    jitter: bool = False

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.min_delay < 0:
            raise ValueError("min_delay must not be negative")


# Single irreversible handshake: few attempts, fixed delay.
CREATE_RETRY = RetryConfig(max_attempts=4, min_delay=2.5)

# Many concurrent uploads: more attempts, jittered exponential delay.
UPLOAD_RETRY = RetryConfig(
    max_attempts=6,
    min_delay=1.0,
    factor=2.0,
    max_delay=30.0,
    jitter=True,
)


@dataclass
class DeployConfig:
    """Configuration for talking to a deployment service.

    Attributes:
        token: Bearer token sent with every request.
        host: Deployment API host name (scheme and trailing slash are stripped).
        port: HTTPS port.
        timeout: Request timeout in seconds.
        verify_ssl: Whether to verify TLS certificates.
        force_new: Ask the service for a new deployment even if one matches.
        create_retry: Retry budget for the create handshake.
        upload_retry: Retry budget for each file upload.
    """

    token: str
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT
    timeout: float = 30.0
    verify_ssl: bool = True
    force_new: bool = False
    create_retry: RetryConfig = field(default=CREATE_RETRY)
    upload_retry: RetryConfig = field(default=UPLOAD_RETRY)

    def __post_init__(self) -> None:
        """Normalize host."""
        host = self.host
        for scheme in ("https://", "http://"):
            if host.startswith(scheme):
                host = host[len(scheme):]
        self.host = host.rstrip("/")

    @property
    def base_url(self) -> str:
        """Get the HTTPS base URL of the API."""
        if self.port == DEFAULT_PORT:
            return f"https://{self.host}"
        return f"https://{self.host}:{self.port}"
