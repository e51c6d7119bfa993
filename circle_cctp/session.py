"""HTTP session for Circle APIs.

Transient HTTP failures (throttling, gateway errors) are retried at the
transport level by urllib3 before our own status polling sees them.
Only idempotent methods are retried: write requests to the custody API
carry an idempotency key, but we let the operator decide about re-submits.
"""

import logging

from requests import Session
from requests.adapters import HTTPAdapter
from urllib3 import Retry

logger = logging.getLogger(__name__)

#: Default number of transport level retries
DEFAULT_RETRIES = 3

#: Default backoff factor for transport level retries (seconds)
DEFAULT_BACKOFF_FACTOR = 0.5

#: HTTP statuses urllib3 retries by itself
RETRY_STATUSES = (429, 500, 502, 503, 504)


class LoggingRetry(Retry):
    """Be verbose when Circle throttles us or a gateway fails.

    Query strings are cut from the logged URL.
    """

    def __init__(self, *args, **kwargs):
        self.logger = kwargs.pop("logger", logger)
        super().__init__(*args, **kwargs)

    def new(self, **kw):
        # urllib3 clones the policy on every increment
        retry = super().new(**kw)
        retry.logger = self.logger
        return retry

    def increment(self, method=None, url=None, response=None, error=None, _pool=None, _stacktrace=None):
        if response:
            status = response.status
            reason = response.reason
        else:
            status = None
            reason = str(error)

        path = (url or "").split("?")[0]
        self.logger.warning("Retrying: %s %s (status: %s, reason: %s)", method, path, status, reason)
        return super().increment(method, url, response, error, _pool, _stacktrace)


def create_circle_session(
    retries: int = DEFAULT_RETRIES,
    backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
) -> Session:
    """Create a requests session for Circle's custody and Iris APIs.

    Example::

        from circle_cctp.session import create_circle_session

        session = create_circle_session()
        response = session.get("https://iris-api-sandbox.circle.com/v1/messages/0/0x...")

    :param retries:
        Maximum number of transport level retries

    :param backoff_factor:
        Backoff factor for exponential retry delays

    :return:
        Session with logging retry adapters mounted
    """
    session = Session()
    retry_policy = LoggingRetry(
        total=retries,
        backoff_factor=backoff_factor,
        status_forcelist=RETRY_STATUSES,
        respect_retry_after_header=True,
        # Let the caller see the final response instead of urllib3 MaxRetryError
        raise_on_status=False,
        logger=logger,
    )
    adapter = HTTPAdapter(max_retries=retry_policy)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    return session
