"""
Session Manager for SecretPlan
Handles auto-lock and idle detection
"""

import logging
import time
from typing import Callable, Optional

from secretplan.constants import AUTO_LOCK_MINUTES, MAX_AUTO_LOCK_MINUTES

logger = logging.getLogger(__name__)


class SessionManager:
    """Tracks an unlocked session and decides when it has gone idle"""

    def __init__(
        self,
        auto_lock_minutes: int = AUTO_LOCK_MINUTES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._clock = clock
        self.auto_lock_minutes = 0
        self.set_auto_lock_time(auto_lock_minutes)
        self.last_activity: Optional[float] = None
        self.session_start: Optional[float] = None
        self.is_active = False
        self.lock_callback: Optional[Callable] = None

    def start_session(self):
        """Start a new session"""
        now = self._clock()
        self.session_start = now
        self.last_activity = now
        self.is_active = True

    def end_session(self):
        """End current session"""
        self.is_active = False
        self.session_start = None
        self.last_activity = None

    def update_activity(self):
        """Update last activity timestamp"""
        if self.is_active:
            self.last_activity = self._clock()

    def should_auto_lock(self) -> bool:
        """Check if vault should auto-lock due to inactivity"""
        if not self.is_active or self.last_activity is None:
            return False
        if self.auto_lock_minutes == 0:
            return False
        return self.get_idle_time() > self.auto_lock_minutes * 60

    def get_idle_time(self) -> int:
        """Get idle time in seconds"""
        if self.last_activity is None:
            return 0
        return int(self._clock() - self.last_activity)

    def get_session_duration(self) -> int:
        """Get total session duration in seconds"""
        if self.session_start is None:
            return 0
        return int(self._clock() - self.session_start)

    def set_lock_callback(self, callback: Callable):
        """Set callback function to call when auto-lock triggers"""
        self.lock_callback = callback

    def check_and_lock(self) -> bool:
        """Check if should lock and execute lock callback"""
        if self.should_auto_lock():
            logger.info("Auto-locking after %d idle seconds", self.get_idle_time())
            self.force_lock()
            return True
        return False

    def set_auto_lock_time(self, minutes: int):
        """Update auto-lock timeout; 0 disables auto-lock"""
        self.auto_lock_minutes = max(0, min(int(minutes), MAX_AUTO_LOCK_MINUTES))

    def get_time_until_lock(self) -> int:
        """Get seconds remaining until auto-lock"""
        if not self.is_active or self.last_activity is None:
            return 0
        if self.auto_lock_minutes == 0:
            return 0
        remaining = self.auto_lock_minutes * 60 - (self._clock() - self.last_activity)
        return max(0, int(remaining))

    def get_session_info(self) -> dict:
        """Get current session information"""
        return {
            "is_active": self.is_active,
            "session_duration": self.get_session_duration(),
            "idle_time": self.get_idle_time(),
            "time_until_lock": self.get_time_until_lock(),
            "auto_lock_enabled": self.auto_lock_minutes > 0,
            "auto_lock_minutes": self.auto_lock_minutes,
        }

    def force_lock(self):
        """Force immediate lock"""
        if self.lock_callback:
            self.lock_callback()
        self.end_session()
