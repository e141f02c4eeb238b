"""
Send Pacing
===========

Per-identity cool-down between successful posts. Back-to-back posts from the
same account are a common trigger for the platform's abuse detection, so
after every successful post the identity has to wait a random number of
seconds before the next one goes out.

The pacer is advisory: ``can_send`` reports how long to wait and the caller
suspends. It never rejects a request. Failed posts do not advance the gate.
State is in-process and volatile.
"""

import logging
import math
import random
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

from config import get_settings
from models import PacingDecision, PacingState, utcnow

logger = logging.getLogger(__name__)


class SendPacer:
    """
    Mapping from identity key to the earliest next allowed send time.

    Args:
        min_delay (Optional[int]): Lower bound of the random cool-down in seconds
        max_delay (Optional[int]): Upper bound of the random cool-down in seconds
        clock (Callable[[], datetime]): Returns the current UTC time
        rng (random.Random): Source of the random delays
    """

    def __init__(
        self,
        min_delay: Optional[int] = None,
        max_delay: Optional[int] = None,
        clock: Callable[[], datetime] = utcnow,
        rng: Optional[random.Random] = None,
    ):
        settings = get_settings()
        self.min_delay = settings.PACING_MIN_DELAY_SECONDS if min_delay is None else min_delay
        self.max_delay = settings.PACING_MAX_DELAY_SECONDS if max_delay is None else max_delay
        if self.min_delay > self.max_delay:
            raise ValueError(f"min_delay ({self.min_delay}) must not exceed max_delay ({self.max_delay})")
        self._clock = clock
        self._rng = random.Random() if rng is None else rng
        self._states: Dict[str, PacingState] = {}

    def __contains__(self, key: str) -> bool:
        return key in self._states

    def random_delay(self) -> int:
        """Draw a cool-down uniformly from the closed interval [min_delay, max_delay]."""
        return self._rng.randint(self.min_delay, self.max_delay)

    def _wait_seconds(self, state: PacingState, now: datetime) -> int:
        remaining = (state.next_allowed_send_time - now).total_seconds()
        return max(0, math.ceil(remaining))

    def can_send(self, key: str) -> PacingDecision:
        state = self._states.get(key)
        if state is None:
            return PacingDecision(allowed=True)

        now = self._clock()
        if now >= state.next_allowed_send_time:
            return PacingDecision(allowed=True)

        return PacingDecision(allowed=False, wait_seconds=self._wait_seconds(state, now))

    def record_send(self, key: str, delay_seconds: int) -> None:
        """
        Start the cool-down after a successful post.

        Args:
            key (str): The identity key
            delay_seconds (int): Seconds until the identity may post again
        """
        next_time = self._clock() + timedelta(seconds=delay_seconds)
        previous = self._states.get(key)
        if previous is not None and previous.next_allowed_send_time > next_time:
            # Concurrent posts may finish out of order; the gate never moves backwards
            next_time = previous.next_allowed_send_time
        self._states[key] = PacingState(next_allowed_send_time=next_time, delay_seconds=delay_seconds)
        logger.info(f"{key} next send time set to: {next_time.isoformat()}, delay: {delay_seconds}s")

    def clear(self, key: str) -> bool:
        deleted = self._states.pop(key, None) is not None
        logger.info(f"User delay cleared for {key}, deleted: {deleted}")
        return deleted

    def status(self, key: str) -> Dict[str, Any]:
        state = self._states.get(key)
        if state is None:
            return {"exists": False}

        return {
            "exists": True,
            "next_allowed_send_time": state.next_allowed_send_time.isoformat(),
            "delay_seconds": state.delay_seconds,
            "wait_seconds": self._wait_seconds(state, self._clock()),
        }
