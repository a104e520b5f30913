# storefront/services/rate_limit_service.py
import logging
import math
from datetime import datetime, timedelta
from typing import Optional
import pytz
from ..config import Config
from ..errors import PersistenceError, RateLimited

logger = logging.getLogger(__name__)

class RateLimiter:
    """Fixed-window request counter shared through the datastore"""

    def __init__(self, db, limit: Optional[int] = None, window_seconds: Optional[int] = None):
        self.db = db
        self.limit = limit or Config.RATE_LIMIT_REQUESTS
        self.window = timedelta(seconds=window_seconds or Config.RATE_LIMIT_WINDOW_SECONDS)

    async def hit(self, key: str):
        """Count a request for the key; raises RateLimited once the window is full"""
        try:
            count, reset_at = await self.db.hit_counter(key, self.window)
        except PersistenceError as e:
            # counter unavailable: let the request through
            logger.warning(f"Rate limit check skipped for {key}: {e}")
            return

        if count > self.limit:
            now = datetime.now(pytz.utc)
            if reset_at.tzinfo is None:
                reset_at = pytz.utc.localize(reset_at)
            retry_after = math.ceil(max(0.0, (reset_at - now).total_seconds()))
            logger.info(f"Rate limit exceeded for {key} ({count} in window)")
            raise RateLimited(retry_after)
