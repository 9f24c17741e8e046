import threading
import weakref
from contextlib import contextmanager
from functools import wraps


# ==========================================================
#                  BALANCE LOCK MANAGER
# ==========================================================
class BalanceLockManager:
    """
    Per-user mutual exclusion for multi-step balance flows inside one process.

    The conditional UPDATE in AccountLedger is what keeps a balance from going
    negative. These locks additionally keep a user's purchase or withdrawal
    steps from interleaving with another flow for the same user.
    """
    # entries vanish once no flow holds or waits on them
    _locks = weakref.WeakValueDictionary()
    _registry_lock = threading.Lock()

    @classmethod
    def _lock_for(cls, user_id: int) -> threading.Lock:
        with cls._registry_lock:
            lock = cls._locks.get(user_id)
            if lock is None:
                lock = cls._locks[user_id] = threading.Lock()
            return lock

    @classmethod
    @contextmanager
    def hold(cls, *user_ids):
        # sorted order so two flows over the same users cannot deadlock
        locks = [cls._lock_for(uid) for uid in sorted(set(user_ids))]
        acquired = []
        try:
            for lock in locks:
                lock.acquire()
                acquired.append(lock)
            yield
        finally:
            for lock in reversed(acquired):
                lock.release()

    @classmethod
    def with_lock(cls, func):
        """Decorator that locks on the first argument `user_id`"""
        @wraps(func)
        def wrapper(user_id, *args, **kwargs):
            with cls.hold(user_id):
                return func(user_id, *args, **kwargs)
        return wrapper
