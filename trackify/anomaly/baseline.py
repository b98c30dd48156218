"""
Per-user baseline storage.

A store maps user_id -> UserBaselineModel. Values are immutable and the
only write is a whole-value replace, so a concurrent reader sees either the
old baseline or the new one. Last writer wins.
"""
import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from trackify.domain.models import UserBaselineModel

class BaselineStore(ABC):
    """Key -> baseline store. Implementations must make replace() atomic per key."""

    @abstractmethod
    def get(self, user_id: Any) -> Optional[UserBaselineModel]:
        pass

    @abstractmethod
    def replace(self, user_id: Any, baseline: UserBaselineModel) -> None:
        pass

    @abstractmethod
    def user_ids(self) -> List[Any]:
        pass

    def __len__(self) -> int:
        return len(self.user_ids())

    def snapshot(self) -> Dict[Any, UserBaselineModel]:
        out = {}
        for uid in self.user_ids():
            baseline = self.get(uid)
            if baseline is not None:
                out[uid] = baseline
        return out

class InMemoryBaselineStore(BaselineStore):
    """Process-local store backed by a dict guarded by a lock."""

    def __init__(self):
        self._baselines: Dict[Any, UserBaselineModel] = {}
        self._lock = threading.Lock()

    def get(self, user_id):
        with self._lock:
            return self._baselines.get(user_id)

    def replace(self, user_id, baseline):
        if baseline.user_id != user_id:
            raise ValueError(f"Baseline for user {baseline.user_id} stored under {user_id}")
        with self._lock:
            self._baselines[user_id] = baseline

    def user_ids(self):
        with self._lock:
            return list(self._baselines)

    def __len__(self):
        with self._lock:
            return len(self._baselines)

    def snapshot(self):
        with self._lock:
            return dict(self._baselines)
