# habit_store.py
import json
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from types import MappingProxyType
from typing import Any, Callable, Dict, FrozenSet, List, Mapping, Optional, Set, Tuple

from habit_dates import DayLike, InvalidDateKeyError, is_date_key, to_date, to_date_key
from local_storage import StorageError

logger = logging.getLogger(__name__)

DEFAULT_STORAGE_KEY = "habit-tracker:v1"


# ---------------- Errors ---------------- #
class HabitStoreError(Exception):
    """Base class for rejected store operations."""


class EmptyNameError(HabitStoreError, ValueError):
    def __init__(self):
        super().__init__("Habit name cannot be empty.")


class HabitNotFoundError(HabitStoreError, LookupError):
    def __init__(self, habit_id: str):
        super().__init__(f"Habit '{habit_id}' not found.")
        self.habit_id = habit_id


class CorruptStateError(ValueError):
    """The persisted document is not a habit tracker state."""


# ---------------- Data ---------------- #
@dataclass(frozen=True)
class Habit:
    id: str
    name: str
    created_at: str  # YYYY-MM-DD

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "name": self.name, "createdAt": self.created_at}


@dataclass(frozen=True)
class StoreSnapshot:
    """Read-only view of the store: habits in display order and completed days per habit."""

    habits: Tuple[Habit, ...] = ()
    completions: Mapping[str, FrozenSet[str]] = field(default_factory=lambda: MappingProxyType({}))

    def habit(self, habit_id: str) -> Habit:
        for h in self.habits:
            if h.id == habit_id:
                return h
        raise HabitNotFoundError(habit_id)

    def has_habit(self, habit_id: str) -> bool:
        return any(h.id == habit_id for h in self.habits)

    def is_completed(self, habit_id: str, day: DayLike) -> bool:
        return to_date_key(day) in self.completions.get(habit_id, frozenset())

    def completed_count(self, day: DayLike) -> int:
        key = to_date_key(day)
        return sum(1 for h in self.habits if key in self.completions.get(h.id, frozenset()))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "habits": [h.to_dict() for h in self.habits],
            "completions": {
                h.id: {d: True for d in sorted(self.completions.get(h.id, ()))}
                for h in self.habits
            },
        }


def _make_snapshot(habits, completions) -> StoreSnapshot:
    return StoreSnapshot(
        habits=tuple(habits),
        completions=MappingProxyType({hid: frozenset(days) for hid, days in completions.items()}),
    )


# ---------------- Serialization ---------------- #
def serialize_snapshot(snapshot: StoreSnapshot) -> str:
    return json.dumps(snapshot.to_dict(), ensure_ascii=False, separators=(",", ":"))


def new_habit_id() -> str:
    return f"h_{uuid.uuid4().hex}"


def _completed_days(raw) -> Set[str]:
    """Completed day keys from a {dateKey: bool} map; false and malformed keys are dropped."""
    if not isinstance(raw, dict):
        return set()
    return {d for d, v in raw.items() if v is True and is_date_key(d)}


def deserialize_snapshot(text: str, today: Optional[DayLike] = None,
                         id_factory: Callable[[], str] = new_habit_id) -> StoreSnapshot:
    """
    Parse a persisted document into a snapshot.

    Besides the canonical document this accepts the older shapes:
      - habits with their own nested ``completions`` map
      - habits as a list of names, completions keyed ``{date: {index: bool}}``
    Entries for unknown habits are dropped.
    """
    try:
        doc = json.loads(text)
    except (TypeError, ValueError) as e:
        raise CorruptStateError(f"Stored state is not valid JSON: {e}") from e
    if not isinstance(doc, dict):
        raise CorruptStateError("Stored state must be a JSON object")

    raw_habits = doc.get("habits", [])
    raw_completions = doc.get("completions", {})
    if not isinstance(raw_habits, list) or not isinstance(raw_completions, dict):
        raise CorruptStateError("'habits' must be a list and 'completions' an object")

    fallback_day = to_date_key(today or date.today())
    habits: List[Habit] = []
    completions: Dict[str, Set[str]] = {}

    if raw_habits and all(isinstance(h, str) for h in raw_habits):
        logger.info("Migrating %d positional habits to id-keyed completions", len(raw_habits))
        for index, name in enumerate(raw_habits):
            if not name.strip():
                continue
            habit_id = id_factory()
            days = {
                d for d, per_day in raw_completions.items()
                if is_date_key(d) and isinstance(per_day, dict) and per_day.get(str(index)) is True
            }
            completions[habit_id] = days
            habits.append(Habit(habit_id, name.strip(), min(days) if days else fallback_day))
        return _make_snapshot(habits, completions)

    for raw in raw_habits:
        if not isinstance(raw, dict):
            raise CorruptStateError(f"Unexpected habit entry: {raw!r}")
        habit_id, name = raw.get("id"), raw.get("name")
        if not isinstance(habit_id, str) or not habit_id or not isinstance(name, str) or not name.strip():
            raise CorruptStateError(f"Habit entry needs a string id and name: {raw!r}")
        if habit_id in completions:
            raise CorruptStateError(f"Duplicate habit id '{habit_id}'")

        days = _completed_days(raw_completions.get(habit_id))
        if "completions" in raw:
            days |= _completed_days(raw["completions"])

        created = raw.get("createdAt")
        if is_date_key(created):
            created_at = created
        else:
            try:
                # older documents stored a full ISO timestamp
                created_at = to_date_key(str(created)[:10])
            except InvalidDateKeyError:
                created_at = min(days) if days else fallback_day

        habits.append(Habit(habit_id, name.strip(), created_at))
        completions[habit_id] = days

    orphans = set(raw_completions) - set(completions)
    if orphans:
        logger.info("Dropping completions for %d unknown habit id(s)", len(orphans))
    return _make_snapshot(habits, completions)


# ---------------- Store ---------------- #
class HabitStore:
    """
    Owns the habit list and completion record.

    Every mutation is written to ``storage`` right away. A failed write is
    logged and kept in ``last_save_error``; the in-memory state stays the
    source of truth for the session.
    """

    def __init__(self, storage, storage_key: str = DEFAULT_STORAGE_KEY,
                 clock: Callable[[], date] = date.today,
                 id_factory: Callable[[], str] = new_habit_id):
        self.storage = storage
        self.storage_key = storage_key
        self.clock = clock
        self.id_factory = id_factory
        self.last_save_error: Optional[StorageError] = None
        self._habits: List[Habit] = []
        self._completions: Dict[str, Set[str]] = {}
        self._load()

    # ---- persistence ----
    def _load(self):
        try:
            raw = self.storage.read(self.storage_key)
        except StorageError as e:
            logger.warning("Could not read saved habits, starting empty: %s", e)
            return
        if raw is None:
            logger.info("No saved habits under '%s', starting empty", self.storage_key)
            return
        try:
            snap = deserialize_snapshot(raw, today=self.today(), id_factory=self._fresh_id)
        except CorruptStateError as e:
            logger.warning("Saved habits are corrupt, starting empty: %s", e)
            return
        self._habits = list(snap.habits)
        self._completions = {hid: set(days) for hid, days in snap.completions.items()}
        logger.info("Loaded %d habit(s) from '%s'", len(self._habits), self.storage_key)

    def _save(self) -> bool:
        try:
            self.storage.write(self.storage_key, serialize_snapshot(self.snapshot()))
        except StorageError as e:
            logger.error("Error saving habits (kept in memory): %s", e)
            self.last_save_error = e
            return False
        self.last_save_error = None
        return True

    # ---- queries ----
    def today(self) -> date:
        return self.clock()

    @property
    def habits(self) -> Tuple[Habit, ...]:
        return tuple(self._habits)

    def get_habit(self, habit_id: str) -> Habit:
        return self._habits[self._index(habit_id)]

    def is_completed(self, habit_id: str, day: DayLike) -> bool:
        return to_date_key(day) in self._completions.get(habit_id, ())

    def snapshot(self) -> StoreSnapshot:
        return _make_snapshot(self._habits, self._completions)

    def _index(self, habit_id: str) -> int:
        for i, h in enumerate(self._habits):
            if h.id == habit_id:
                return i
        raise HabitNotFoundError(habit_id)

    def _fresh_id(self) -> str:
        habit_id = self.id_factory()
        while habit_id in self._completions or any(h.id == habit_id for h in self._habits):
            habit_id = self.id_factory()
        return habit_id

    @staticmethod
    def _clean_name(name) -> str:
        cleaned = (name or "").strip()
        if not cleaned:
            logger.debug("Rejected empty habit name")
            raise EmptyNameError()
        return cleaned

    # ---- mutations ----
    def add_habit(self, name: str) -> Habit:
        name = self._clean_name(name)
        habit = Habit(self._fresh_id(), name, to_date_key(self.today()))
        self._habits.append(habit)
        self._completions[habit.id] = set()
        self._save()
        logger.info("Added habit %s (%s)", habit.id, habit.name)
        return habit

    def rename_habit(self, habit_id: str, name: str) -> Habit:
        index = self._index(habit_id)
        old = self._habits[index]
        habit = Habit(old.id, self._clean_name(name), old.created_at)
        self._habits[index] = habit
        self._save()
        return habit

    def delete_habit(self, habit_id: str) -> Habit:
        habit = self._habits.pop(self._index(habit_id))
        self._completions.pop(habit_id, None)
        self._save()
        logger.info("Deleted habit %s (%s)", habit.id, habit.name)
        return habit

    def set_completion(self, habit_id: str, day: DayLike, completed: bool):
        self._index(habit_id)
        key = to_date_key(day)
        days = self._completions.setdefault(habit_id, set())
        if completed:
            days.add(key)
        else:
            days.discard(key)
        self._save()

    def toggle_completion(self, habit_id: str, day: Optional[DayLike] = None) -> bool:
        day = self.today() if day is None else day
        completed = not self.is_completed(habit_id, day)
        self.set_completion(habit_id, day, completed)
        return completed

    def set_day_completion(self, day: DayLike, completed: bool):
        """Mark (or clear) ``day`` for every habit at once."""
        key = to_date_key(day)
        for h in self._habits:
            days = self._completions.setdefault(h.id, set())
            if completed:
                days.add(key)
            else:
                days.discard(key)
        self._save()

    def reset(self):
        self._habits = []
        self._completions = {}
        self._save()
        logger.info("Cleared all habits")
