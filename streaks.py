# streaks.py
"""Streaks and heatmap data derived from a StoreSnapshot.

Streak rule (both policies): walk backward one day at a time while the day
qualifies. If today does not qualify yet, the walk starts at yesterday, so a
pending today never resets a streak earned through yesterday. Any failed day
in the past ends the streak.
"""
from dataclasses import dataclass
from datetime import date, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional

from habit_dates import DayLike, last_n_days, to_date, to_date_key
from habit_store import HabitNotFoundError, StoreSnapshot

DEFAULT_MAX_STREAK_DAYS = 3650
HEATMAP_LEVELS = 3  # levels 1..3 above the empty level 0
MAX_HEATMAP_DAYS = 3660


class StreakPolicy(str, Enum):
    PER_HABIT = "per_habit"    # each habit counts its own days
    ALL_HABITS = "all_habits"  # a day counts only when every habit is done


@dataclass(frozen=True)
class HeatmapDay:
    date: str
    completed: int
    total: int
    ratio: float
    level: int

    def to_dict(self) -> Dict:
        return {
            "date": self.date,
            "completed": self.completed,
            "total": self.total,
            "ratio": self.ratio,
            "level": self.level,
        }


@dataclass(frozen=True)
class StreakSummary:
    all_habits: int
    per_habit_total: int
    per_habit_max: int
    per_habit_average: float

    def to_dict(self) -> Dict:
        return {
            "allHabits": self.all_habits,
            "perHabitTotal": self.per_habit_total,
            "perHabitMax": self.per_habit_max,
            "perHabitAverage": self.per_habit_average,
        }


def level_for(completed: int, total: int) -> int:
    """
    Heatmap bucket: 0 when nothing is done, otherwise ceil(3 * completed / total).

    Boundaries sit at exact thirds, so 1 of 3 habits is level 1 and 2 of 3 is
    level 2. Fixed 0.33 / 0.66 cut-offs would put those same days one level
    higher.
    """
    if total <= 0 or completed <= 0:
        return 0
    return min(HEATMAP_LEVELS, -(-HEATMAP_LEVELS * completed // total))


class StreakCalculator:
    def __init__(self, snapshot: StoreSnapshot, today: Optional[DayLike] = None,
                 max_days: int = DEFAULT_MAX_STREAK_DAYS):
        if max_days < 1:
            raise ValueError("max_days must be at least 1")
        self.snapshot = snapshot
        self.today = to_date(today) if today is not None else date.today()
        self.max_days = max_days

    # ---- predicates ----
    def _habit_done(self, habit_id: str) -> Callable[[date], bool]:
        days = self.snapshot.completions.get(habit_id, frozenset())
        return lambda d: to_date_key(d) in days

    def _all_done(self, d: date) -> bool:
        key = to_date_key(d)
        return bool(self.snapshot.habits) and all(
            key in self.snapshot.completions.get(h.id, frozenset()) for h in self.snapshot.habits
        )

    def _walk(self, predicate: Callable[[date], bool]) -> int:
        day = self.today if predicate(self.today) else self.today - timedelta(days=1)
        streak = 0
        while streak < self.max_days and predicate(day):
            streak += 1
            day -= timedelta(days=1)
        return streak

    def _require(self, habit_id: str):
        if not self.snapshot.has_habit(habit_id):
            raise HabitNotFoundError(habit_id)

    # ---- streaks ----
    def current_streak(self, policy: StreakPolicy = StreakPolicy.ALL_HABITS,
                       habit_id: Optional[str] = None) -> int:
        """
        Current streak under ``policy``.
        PER_HABIT with a habit_id gives that habit's streak; without one, the best
        streak of any habit.
        """
        policy = StreakPolicy(policy)
        if not self.snapshot.habits and habit_id is None:
            return 0
        if policy is StreakPolicy.ALL_HABITS:
            return self._walk(self._all_done)
        if habit_id is not None:
            self._require(habit_id)
            return self._walk(self._habit_done(habit_id))
        return max(self.habit_streaks().values())

    def habit_streaks(self) -> Dict[str, int]:
        return {h.id: self._walk(self._habit_done(h.id)) for h in self.snapshot.habits}

    def longest_streak(self, habit_id: Optional[str] = None) -> int:
        """Longest run of qualifying days ever recorded (one habit, or all habits together)."""
        if habit_id is not None:
            self._require(habit_id)
            days = set(self.snapshot.completions.get(habit_id, ()))
        elif self.snapshot.habits:
            sets = [set(self.snapshot.completions.get(h.id, ())) for h in self.snapshot.habits]
            days = set.intersection(*sets)
        else:
            return 0

        longest = 0
        for key in days:
            start = to_date(key)
            if to_date_key(start - timedelta(days=1)) in days:
                continue  # not the first day of a run
            length = 1
            while to_date_key(start + timedelta(days=length)) in days:
                length += 1
            longest = max(longest, length)
        return longest

    def summary(self) -> StreakSummary:
        per_habit = list(self.habit_streaks().values())
        return StreakSummary(
            all_habits=self.current_streak(StreakPolicy.ALL_HABITS),
            per_habit_total=sum(per_habit),
            per_habit_max=max(per_habit, default=0),
            per_habit_average=round(sum(per_habit) / len(per_habit), 2) if per_habit else 0.0,
        )

    # ---- heatmap ----
    def completion_ratio(self, day: DayLike) -> float:
        total = len(self.snapshot.habits)
        if total == 0:
            return 0.0
        return self.snapshot.completed_count(day) / total

    def heatmap_level(self, day: DayLike) -> int:
        return level_for(self.snapshot.completed_count(day), len(self.snapshot.habits))

    def heatmap(self, days: int) -> List[HeatmapDay]:
        """One entry per day for the last ``days`` days, oldest first."""
        if days <= 0:
            return []
        total = len(self.snapshot.habits)
        result = []
        for d in last_n_days(self.today, days):
            completed = self.snapshot.completed_count(d)
            result.append(HeatmapDay(
                date=to_date_key(d),
                completed=completed,
                total=total,
                ratio=completed / total if total else 0.0,
                level=level_for(completed, total),
            ))
        return result

    def heatmap_levels(self, days: int) -> List[int]:
        return [d.level for d in self.heatmap(days)]


def calculate_streak(snapshot: StoreSnapshot, policy: StreakPolicy = StreakPolicy.ALL_HABITS,
                     habit_id: Optional[str] = None, today: Optional[DayLike] = None,
                     max_days: int = DEFAULT_MAX_STREAK_DAYS) -> int:
    return StreakCalculator(snapshot, today, max_days).current_streak(policy, habit_id)


def heatmap_levels(snapshot: StoreSnapshot, days: int, today: Optional[DayLike] = None) -> List[int]:
    return StreakCalculator(snapshot, today).heatmap_levels(days)
