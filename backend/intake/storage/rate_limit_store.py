"""
Counter stores for the rate limiter.

InMemoryRateLimitStore serves a single process. DatabaseRateLimitStore keeps
counters in the shared SQL database so several instances enforce one limit.
Both expire a counter once its window has passed; sweep() removes expired
counters so neither store grows without bound.
"""

import threading
from typing import Dict, Tuple

from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from intake.errors import PersistenceError
from intake.services.database_service import DatabaseService, RateLimitCounter


class RateLimitStore:
    """Interface shared by the counter stores."""

    def hit(self, key: str, window_seconds: float, now: float) -> Tuple[int, float]:
        """
        Record one request for key.

        Args:
            key: Scoped client key
            window_seconds: Window length used when a new window starts
            now: Current time in epoch seconds

        Returns:
            Tuple of (request count in the current window, window reset time)
        """
        raise NotImplementedError

    def sweep(self, now: float) -> int:
        """Delete expired counters. Returns how many were removed."""
        raise NotImplementedError


class InMemoryRateLimitStore(RateLimitStore):
    """Counters in a process-local dict guarded by a lock"""

    def __init__(self):
        # Format: {key: (count, reset_at)}
        self._counters: Dict[str, Tuple[int, float]] = {}
        self._lock = threading.Lock()

    def hit(self, key: str, window_seconds: float, now: float) -> Tuple[int, float]:
        with self._lock:
            count, reset_at = self._counters.get(key, (0, 0.0))
            if now > reset_at:
                count, reset_at = 0, now + window_seconds
            count += 1
            self._counters[key] = (count, reset_at)
            return count, reset_at

    def sweep(self, now: float) -> int:
        with self._lock:
            expired = [key for key, (_, reset_at) in self._counters.items() if now > reset_at]
            for key in expired:
                del self._counters[key]
            return len(expired)

    def __len__(self) -> int:
        return len(self._counters)


class DatabaseRateLimitStore(RateLimitStore):
    """Counters in the rate_limit_counters table"""

    def __init__(self, database_service: DatabaseService, max_attempts: int = 3):
        self.database_service = database_service
        self.max_attempts = max_attempts

    def hit(self, key: str, window_seconds: float, now: float) -> Tuple[int, float]:
        for _ in range(self.max_attempts):
            session = self.database_service.get_session()
            try:
                counter = session.query(RateLimitCounter).filter(
                    RateLimitCounter.key == key
                ).with_for_update().first()

                if counter is None:
                    counter = RateLimitCounter(key=key, count=1, reset_at=now + window_seconds)
                    session.add(counter)
                elif now > counter.reset_at:
                    counter.count = 1
                    counter.reset_at = now + window_seconds
                else:
                    counter.count += 1

                session.commit()
                return counter.count, counter.reset_at
            except IntegrityError:
                # Another instance created the row first; retry as an update
                session.rollback()
            except SQLAlchemyError as e:
                session.rollback()
                raise PersistenceError(f"Failed to record request for {key}: {e}")
            finally:
                session.close()
        raise PersistenceError(f"Failed to record request for {key}")

    def sweep(self, now: float) -> int:
        session = self.database_service.get_session()
        try:
            removed = session.query(RateLimitCounter).filter(
                RateLimitCounter.reset_at < now
            ).delete()
            session.commit()
            return removed
        except SQLAlchemyError as e:
            session.rollback()
            raise PersistenceError(f"Failed to sweep rate limit counters: {e}")
        finally:
            session.close()
