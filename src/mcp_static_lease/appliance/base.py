"""Appliance configuration and per-operation session state."""
import os
import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx

from ..utils.connection import with_retry

logger = logging.getLogger(__name__)


@dataclass
class ApplianceConfig:
    """Configuration for one managed appliance."""
    type: str
    name: str
    host: str
    username: str
    password: Optional[str] = None
    password_env: str = "APPLIANCE_PASSWORD"
    timeout: int = 30
    retries: int = 3
    retry_delay: float = 2
    headless: bool = True
    verify_ssl: bool = False
    # UI settle delays in seconds. These are floors, not exact timings.
    menu_delay: float = 0.2
    alert_settle_delay: float = 0.3
    table_settle_delay: float = 0.5
    overlay_delay: float = 0.2
    browser_args: list[str] = field(default_factory=list)

    def get_password(self) -> str:
        """Get password from config or environment variable."""
        if self.password:
            return self.password
        return os.environ.get(self.password_env, "")

    @property
    def base_url(self) -> str:
        return f"https://{self.host}/"

    @property
    def timeout_ms(self) -> float:
        return float(self.timeout * 1000)


@dataclass
class ApplianceSession:
    """One live authenticated UI session.

    The alert fields are written only by the dialog listener and read
    only by the operation currently running on this session.
    """
    endpoint: str
    username: str
    page: Any = None
    alert_found: bool = False
    alert_message: str = ""

    def record_alert(self, message: str) -> None:
        self.alert_message = message
        self.alert_found = True


@dataclass
class ApplianceStatus:
    """Reachability of an appliance's admin UI."""
    reachable: bool
    status_code: Optional[int] = None
    error: Optional[str] = None


@with_retry(max_attempts=2, min_wait=0.5, max_wait=2, exceptions=(httpx.TransportError,))
async def _probe(url: str, verify: bool, timeout: float) -> httpx.Response:
    async with httpx.AsyncClient(
        timeout=httpx.Timeout(timeout),
        verify=verify,
        follow_redirects=True,
    ) as client:
        return await client.get(url)


async def check_reachable(config: ApplianceConfig) -> ApplianceStatus:
    """Probe the admin UI over HTTPS without opening a browser session.

    Does not occupy the appliance's single UI session slot.
    """
    try:
        resp = await _probe(config.base_url, config.verify_ssl, config.timeout)
    except httpx.HTTPError as e:
        logger.warning(f"Appliance {config.name} unreachable: {e}")
        return ApplianceStatus(reachable=False, error=str(e))
    return ApplianceStatus(reachable=True, status_code=resp.status_code)
