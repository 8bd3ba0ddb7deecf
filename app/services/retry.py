#app\services\retry.py
import logging
from typing import Callable, Type

import backoff

logger = logging.getLogger(__name__)


def retry_with_backoff(
    should_retry: Callable[[BaseException], bool],
    max_retries: int = 3,
    base_delay: float = 1.0,
    exception: Type[BaseException] = Exception,
):
    """Retry the wrapped call on errors accepted by ``should_retry``.

    Waits ``base_delay * 2 ** attempt`` seconds between attempts and makes at
    most ``max_retries + 1`` calls. Errors rejected by ``should_retry`` are
    raised straight away; the last error is raised once retries run out.
    """
    total = max_retries + 1

    def _log_backoff(details):
        logger.warning(
            "%s failed, retrying in %.1fs (attempt %d/%d)",
            details["target"].__name__, details["wait"], details["tries"], total,
        )

    def _log_giveup(details):
        logger.error("%s gave up after %d attempt(s)", details["target"].__name__, details["tries"])

    return backoff.on_exception(
        backoff.expo,
        exception,
        max_tries=total,
        giveup=lambda exc: not should_retry(exc),
        jitter=None,
        on_backoff=_log_backoff,
        on_giveup=_log_giveup,
        logger=None,
        base=2,
        factor=base_delay,
    )
