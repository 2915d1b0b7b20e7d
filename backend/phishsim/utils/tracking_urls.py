"""
Tracking URL helpers
Builds the public-facing links embedded in each recipient's email.
"""
from typing import Optional

from phishsim.core.config import TrackingConfig

# URL parameter carrying the result id of a recipient
RECIPIENT_PARAMETER = "rid"

_LOCAL_HOSTS = ("localhost", "127.0.0.1", "0.0.0.0")


def is_localhost(url: str) -> bool:
    return any(host in url for host in _LOCAL_HOSTS)


def get_public_base_url(config: TrackingConfig, campaign_url: Optional[str]) -> str:
    """
    Priority: configured public URL, then the campaign URL, then the fallback.

    A local campaign URL still beats the fallback, but links built from it
    will not resolve for real recipients, so it is only used for development.
    """
    if config.public_base_url:
        return config.public_base_url.rstrip("/")
    if campaign_url:
        return campaign_url.rstrip("/")
    return config.fallback_base_url.rstrip("/")


def get_phishing_url(config: TrackingConfig, campaign_url: Optional[str], rid: str) -> str:
    """Landing page link used for click tracking."""
    return f"{get_public_base_url(config, campaign_url)}?{RECIPIENT_PARAMETER}={rid}"


def get_tracking_pixel_url(config: TrackingConfig, campaign_url: Optional[str], rid: str) -> str:
    """Open-tracking pixel link."""
    return f"{get_public_base_url(config, campaign_url)}/track?{RECIPIENT_PARAMETER}={rid}"
