import bisect
from datetime import date
from typing import Generic, Iterable, List, Optional, Sequence, TypeVar

from payroll_admin.models.payroll import SalarySetting

T = TypeVar("T")

class MissingScheduleError(LookupError):
    """No salary setting is effective on the requested date"""

    def __init__(self, user_id: Optional[int], on_date: date):
        self.user_id = user_id
        self.on_date = on_date
        super().__init__(f"No salary setting effective on {on_date.isoformat()} for user {user_id}")

class EffectiveDatedCollection(Generic[T]):
    """
    Records valid from their effective_from date until superseded by a later one.

    Items only need an ``effective_from`` date attribute. Two items may not
    share the same effective_from.
    """

    def __init__(self, items: Iterable[T], subject_id: Optional[int] = None):
        self.subject_id = subject_id
        self._items: List[T] = sorted(items, key=lambda item: item.effective_from)
        self._dates: List[date] = [item.effective_from for item in self._items]

        for previous, current in zip(self._dates, self._dates[1:]):
            if previous == current:
                raise ValueError(f"Duplicate effective_from {current.isoformat()} for subject {subject_id}")

    def __len__(self) -> int:
        return len(self._items)

    def __iter__(self):
        return iter(self._items)

    def resolve_at(self, on_date: date) -> T:
        """Return the most recent item with effective_from <= on_date"""
        index = bisect.bisect_right(self._dates, on_date)
        if index == 0:
            raise MissingScheduleError(self.subject_id, on_date)
        return self._items[index - 1]

    def find_at(self, on_date: date) -> Optional[T]:
        try:
            return self.resolve_at(on_date)
        except MissingScheduleError:
            return None

    def effective_until(self, on_date: date) -> List[T]:
        """Items already in force on on_date, most recent first"""
        index = bisect.bisect_right(self._dates, on_date)
        return list(reversed(self._items[:index]))

def resolve(history: Sequence[SalarySetting], on_date: date) -> SalarySetting:
    """Pick the salary setting in force on on_date from an unsorted history"""
    candidates = [setting for setting in history if setting.effective_from <= on_date]
    if not candidates:
        user_id = history[0].user_id if history else None
        raise MissingScheduleError(user_id, on_date)
    return max(candidates, key=lambda setting: setting.effective_from)
