"""Configuration from environment variables and ``.env`` files.

================================  ==========================================
Variable                          Meaning
================================  ==========================================
``CIRCLE_API_KEY``                Circle API key
``CIRCLE_ENTITY_SECRET``          Entity secret, 64 hex characters
``CIRCLE_API_BASE_URL``           Custody API base URL
``CCTP_ATTESTATION_API_URL``      Iris base URL, chosen per network if unset
``CCTP_POLL_ATTEMPTS``            Status checks before giving up
``CCTP_POLL_INTERVAL``            Seconds between status checks
================================  ==========================================

Credentials are not validated here. If they are missing or wrong,
the first custody API call fails.
"""

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from dotenv import load_dotenv
from requests import Session

from circle_cctp.client import CircleWalletsClient
from circle_cctp.constants import CIRCLE_API_BASE_URL, DEFAULT_POLL_ATTEMPTS, DEFAULT_POLL_INTERVAL
from circle_cctp.retry import CancelToken, RetryPolicy

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CircleConfig:
    api_key: str | None = None
    entity_secret: str | None = None
    api_base_url: str = CIRCLE_API_BASE_URL

    #: Iris base URL. ``None`` picks sandbox or mainnet by the source network.
    attestation_api_url: str | None = None

    poll_attempts: int = DEFAULT_POLL_ATTEMPTS
    poll_interval: float = DEFAULT_POLL_INTERVAL

    @classmethod
    def from_env(cls, environ: dict | None = None, dotenv_path: Path | None = None) -> "CircleConfig":
        """Read configuration from the environment.

        :param environ:
            Use this mapping instead of ``os.environ``. No ``.env`` file is loaded then.

        :param dotenv_path:
            Load this ``.env`` file first. By default, search from the working directory.
        """
        if environ is None:
            load_dotenv(dotenv_path)
            environ = os.environ

        return cls(
            api_key=environ.get("CIRCLE_API_KEY"),
            entity_secret=environ.get("CIRCLE_ENTITY_SECRET") or None,
            api_base_url=environ.get("CIRCLE_API_BASE_URL") or CIRCLE_API_BASE_URL,
            attestation_api_url=environ.get("CCTP_ATTESTATION_API_URL") or None,
            poll_attempts=int(environ.get("CCTP_POLL_ATTEMPTS") or DEFAULT_POLL_ATTEMPTS),
            poll_interval=float(environ.get("CCTP_POLL_INTERVAL") or DEFAULT_POLL_INTERVAL),
        )

    def create_client(self, session: Session | None = None) -> CircleWalletsClient:
        return CircleWalletsClient(
            api_key=self.api_key or "",
            entity_secret=self.entity_secret,
            base_url=self.api_base_url,
            session=session,
        )

    def create_retry_policy(self, cancel_token: CancelToken | None = None) -> RetryPolicy:
        return RetryPolicy(
            max_attempts=self.poll_attempts,
            interval=self.poll_interval,
            cancel_token=cancel_token,
        )
