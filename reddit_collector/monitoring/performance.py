"""Request counters owned by the executor."""

from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Literal, Optional

ConnectionStatus = Literal["healthy", "degraded", "failed"]

# Success rate (percent) under which a connection counts as degraded
DEGRADED_SUCCESS_RATE = 80.0


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PerformanceMetrics:
    """Running response-time statistics for outbound API calls."""

    request_count: int = 0
    total_response_time_ms: float = 0.0
    average_response_time_ms: int = 0
    rate_limit_hits: int = 0
    last_reset: datetime = field(default_factory=_utcnow)

    def record(self, response_time_ms: float) -> None:
        self.request_count += 1
        self.total_response_time_ms += response_time_ms
        self.average_response_time_ms = round(self.total_response_time_ms / self.request_count)

    def record_rate_limit_hit(self) -> None:
        self.rate_limit_hits += 1

    def copy(self) -> "PerformanceMetrics":
        return replace(self)


@dataclass
class ConnectionMetrics:
    """Success/failure counters used to derive a connection status."""

    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    average_response_time_ms: int = 0
    last_connection_check: datetime = field(default_factory=_utcnow)
    status: ConnectionStatus = "healthy"

    @property
    def success_rate(self) -> float:
        """Percentage of successful requests (100 when nothing was sent yet)."""
        if self.total_requests == 0:
            return 100.0
        return self.successful_requests / self.total_requests * 100.0

    def record(self, success: bool, average_response_time_ms: int) -> None:
        """
        Record the outcome of one request and recompute the status.

        Args:
            success: Whether the request completed with a usable response
            average_response_time_ms: Current running average from PerformanceMetrics
        """
        self.total_requests += 1
        if success:
            self.successful_requests += 1
        else:
            self.failed_requests += 1
        self.average_response_time_ms = average_response_time_ms
        self.last_connection_check = _utcnow()

        if self.successful_requests == 0:
            self.status = "failed"
        elif self.success_rate < DEGRADED_SUCCESS_RATE:
            self.status = "degraded"
        else:
            self.status = "healthy"

    def copy(self) -> "ConnectionMetrics":
        return replace(self)


# Reddit free tier: 100 requests/minute over a full day
FREE_TIER_DAILY_QUOTA = 144000
COST_PER_THOUSAND_REQUESTS = 0.6


@dataclass
class CostMetrics:
    """
    Request volume against the daily free quota.

    The daily counter rolls over on the first request of a new UTC day and the
    monthly counter on the first request of a new UTC month.
    """

    total_requests_today: int = 0
    total_requests_this_month: int = 0
    estimated_monthly_cost: float = 0.0
    free_quota_remaining: int = FREE_TIER_DAILY_QUOTA
    cost_per_thousand_requests: float = COST_PER_THOUSAND_REQUESTS
    is_within_free_tier: bool = True
    last_updated: datetime = field(default_factory=_utcnow)

    def record(self, request_count: int = 1, now: Optional[datetime] = None) -> None:
        now = now or _utcnow()
        if self.last_updated.date() < now.date():
            self.total_requests_today = 0
        if (self.last_updated.year, self.last_updated.month) < (now.year, now.month):
            self.total_requests_this_month = 0

        self.total_requests_today += request_count
        self.total_requests_this_month += request_count
        self.estimated_monthly_cost = self.total_requests_this_month / 1000 * self.cost_per_thousand_requests
        self.free_quota_remaining = max(0, FREE_TIER_DAILY_QUOTA - self.total_requests_today)
        self.is_within_free_tier = self.total_requests_today <= FREE_TIER_DAILY_QUOTA
        self.last_updated = now

    def copy(self) -> "CostMetrics":
        return replace(self)
