# web_app.py
import logging
import threading
from functools import wraps
from typing import Optional

from flask import Flask, current_app, flash, jsonify, redirect, render_template, request, url_for

from habit_config import Settings, make_storage
from habit_dates import InvalidDateKeyError, to_date_key
from habit_store import EmptyNameError, HabitNotFoundError, HabitStore
from streaks import MAX_HEATMAP_DAYS, StreakCalculator, StreakPolicy

logger = logging.getLogger(__name__)


# ---------------- App factory ---------------- #
def create_app(settings: Optional[Settings] = None, store: Optional[HabitStore] = None) -> Flask:
    settings = settings or Settings.from_env()
    app = Flask(__name__)
    app.secret_key = settings.secret_key
    app.config.update(
        SESSION_COOKIE_NAME="habit_session",
        SESSION_COOKIE_HTTPONLY=True,
        SESSION_COOKIE_SAMESITE="Lax",
    )

    if store is None:
        store = HabitStore(make_storage(settings), storage_key=settings.storage_key)
    app.extensions["habit_store"] = store
    app.extensions["habit_settings"] = settings
    app.extensions["habit_lock"] = threading.Lock()

    register_routes(app)
    return app


# ---------------- Helpers ---------------- #
def _store() -> HabitStore:
    return current_app.extensions["habit_store"]


def _settings() -> Settings:
    return current_app.extensions["habit_settings"]


def _calculator() -> StreakCalculator:
    store = _store()
    return StreakCalculator(store.snapshot(), store.today(), _settings().max_streak_days)


def locked(view):
    """Run the view while holding the store lock (one actor at a time)."""
    @wraps(view)
    def wrapper(*args, **kwargs):
        with current_app.extensions["habit_lock"]:
            return view(*args, **kwargs)
    return wrapper


def _error(message: str, code: int):
    return jsonify({"error": message}), code


def _ok(payload=None, code: int = 200):
    """JSON response that also reports whether the last write reached storage."""
    body = dict(payload or {})
    error = _store().last_save_error
    body["saved"] = error is None
    if error is not None:
        body["warning"] = "Changes could not be saved and will be lost when the app closes."
    return jsonify(body), code


def _payload() -> dict:
    return request.get_json(silent=True) or {}


def _state() -> dict:
    calc = _calculator()
    state = calc.snapshot.to_dict()
    state["today"] = to_date_key(calc.today)
    state["streaks"] = calc.habit_streaks()
    state["summary"] = calc.summary().to_dict()
    return state


# ---------------- Routes ---------------- #
def register_routes(app: Flask):

    # ---- HTML ----
    @app.route("/")
    @locked
    def index():
        settings = _settings()
        calc = _calculator()
        today = to_date_key(calc.today)
        return render_template(
            "index.html",
            today=today,
            habits=calc.snapshot.habits,
            done_today={h.id for h in calc.snapshot.habits if calc.snapshot.is_completed(h.id, today)},
            habit_streaks=calc.habit_streaks(),
            streak=calc.current_streak(settings.streak_policy),
            policy=settings.streak_policy.value,
            heatmap=calc.heatmap(settings.heatmap_days),
            save_failed=_store().last_save_error is not None,
        )

    @app.route("/habits", methods=["POST"])
    @locked
    def add_habit_form():
        try:
            habit = _store().add_habit(request.form.get("name", ""))
            flash(f"Habit '{habit.name}' added", "success")
        except EmptyNameError as e:
            flash(str(e), "error")
        return redirect(url_for("index"))

    @app.route("/habits/<habit_id>/delete", methods=["POST"])
    @locked
    def delete_habit_form(habit_id):
        try:
            habit = _store().delete_habit(habit_id)
            flash(f"Habit '{habit.name}' deleted", "success")
        except HabitNotFoundError as e:
            flash(str(e), "error")
        return redirect(url_for("index"))

    @app.route("/habits/<habit_id>/toggle", methods=["POST"])
    @locked
    def toggle_habit_form(habit_id):
        try:
            _store().toggle_completion(habit_id, request.form.get("date") or None)
        except (HabitNotFoundError, InvalidDateKeyError) as e:
            flash(str(e), "error")
        return redirect(url_for("index"))

    @app.route("/days/<day>/toggle", methods=["POST"])
    @locked
    def toggle_day_form(day):
        """Heatmap click: a day with every habit done is cleared, anything else is filled."""
        try:
            snapshot = _store().snapshot()
            full = bool(snapshot.habits) and snapshot.completed_count(day) == len(snapshot.habits)
            _store().set_day_completion(day, not full)
        except InvalidDateKeyError as e:
            flash(str(e), "error")
        return redirect(url_for("index"))

    # ---- JSON API ----
    @app.route("/api/state", methods=["GET"])
    @locked
    def get_state():
        return _ok(_state())

    @app.route("/api/habits", methods=["POST"])
    @locked
    def create_habit():
        try:
            habit = _store().add_habit(_payload().get("name"))
        except EmptyNameError as e:
            return _error(str(e), 400)
        return _ok({"habit": habit.to_dict()}, 201)

    @app.route("/api/habits/<habit_id>", methods=["PATCH"])
    @locked
    def rename_habit(habit_id):
        try:
            habit = _store().rename_habit(habit_id, _payload().get("name"))
        except HabitNotFoundError as e:
            return _error(str(e), 404)
        except EmptyNameError as e:
            return _error(str(e), 400)
        return _ok({"habit": habit.to_dict()})

    @app.route("/api/habits/<habit_id>", methods=["DELETE"])
    @locked
    def delete_habit(habit_id):
        try:
            habit = _store().delete_habit(habit_id)
        except HabitNotFoundError as e:
            return _error(str(e), 404)
        return _ok({"deleted": habit.id})

    @app.route("/api/habits/<habit_id>/completions/<day>", methods=["PUT"])
    @locked
    def set_completion(habit_id, day):
        completed = _payload().get("completed")
        if not isinstance(completed, bool):
            return _error("'completed' must be true or false", 400)
        try:
            _store().set_completion(habit_id, day, completed)
        except HabitNotFoundError as e:
            return _error(str(e), 404)
        except InvalidDateKeyError as e:
            return _error(str(e), 400)
        return _ok({"habitId": habit_id, "date": day, "completed": completed})

    @app.route("/api/habits/<habit_id>/toggle", methods=["POST"])
    @locked
    def toggle_completion(habit_id):
        day = _payload().get("date") or to_date_key(_store().today())
        try:
            completed = _store().toggle_completion(habit_id, day)
        except HabitNotFoundError as e:
            return _error(str(e), 404)
        except InvalidDateKeyError as e:
            return _error(str(e), 400)
        return _ok({"habitId": habit_id, "date": day, "completed": completed})

    @app.route("/api/days/<day>", methods=["PUT"])
    @locked
    def set_day(day):
        completed = _payload().get("completed")
        if not isinstance(completed, bool):
            return _error("'completed' must be true or false", 400)
        try:
            _store().set_day_completion(day, completed)
        except InvalidDateKeyError as e:
            return _error(str(e), 400)
        return _ok({"date": day, "completed": completed})

    @app.route("/api/streak", methods=["GET"])
    @locked
    def get_streak():
        policy = request.args.get("policy") or _settings().streak_policy.value
        habit_id = request.args.get("habit_id") or None
        try:
            streak = _calculator().current_streak(StreakPolicy(policy), habit_id)
        except HabitNotFoundError as e:
            return _error(str(e), 404)
        except ValueError:
            return _error(f"Unknown streak policy '{policy}'", 400)
        return jsonify({"policy": policy, "habitId": habit_id, "streak": streak})

    @app.route("/api/heatmap", methods=["GET"])
    @locked
    def get_heatmap():
        days = request.args.get("days", type=int)
        if days is None:
            days = _settings().heatmap_days
        if days < 0 or days > MAX_HEATMAP_DAYS:
            return _error("'days' is out of range", 400)
        return jsonify([d.to_dict() for d in _calculator().heatmap(days)])

    @app.route("/api/reset", methods=["POST"])
    @locked
    def reset():
        _store().reset()
        return _ok({"habits": []})
