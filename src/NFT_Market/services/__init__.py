"""Background and infrastructure services.

Re-exports all public service classes so consumers can import directly:
    from NFT_Market.services import PollingScheduler, RateLimiter
"""

from NFT_Market.services.health import HealthService
from NFT_Market.services.polling import PollingScheduler, PollSubscription
from NFT_Market.services.rate_limiter import RateLimiter

__all__ = [
    # Infrastructure
    "RateLimiter",
    # Scheduling
    "PollSubscription",
    "PollingScheduler",
    # Auxiliary services
    "HealthService",
]
