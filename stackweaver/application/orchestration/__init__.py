"""
Application Orchestration Package

Architectural Intent:
- Contains concurrency helpers used by the stack lifecycle
- Concurrent reachability dialing and per-key mutual exclusion
"""

from stackweaver.application.orchestration.reachability import ReachabilityWaiter
from stackweaver.application.orchestration.keyed_lock import KeyedLock

__all__ = ["ReachabilityWaiter", "KeyedLock"]
