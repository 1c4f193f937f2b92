# src/quietcheck/work/registry.py

from __future__ import annotations

import contextlib
import logging
import sqlite3
from collections.abc import Iterator
from pathlib import Path

from .errors import RegistryUnavailableError
from .models import (
    Outcome,
    RegistrationPolicy,
    RegistryEntry,
    RetryState,
    TaskDefinition,
    TaskRun,
    Transition,
)

logger = logging.getLogger(__name__)


class WorkRegistry:
    """
    SQLite registry of named periodic work.

    One row per task name (the identity key) in `periodic_work`, plus an
    append-only `work_runs` history.

    Atomicity:
    - every mutation is a single BEGIN IMMEDIATE transaction
    - any sqlite3 error rolls back and surfaces as RegistryUnavailableError

    Thread-safety:
    - each method opens its own SQLite connection
    """

    def __init__(self, db_path: str | Path = "work.sqlite3") -> None:
        self._db_path = Path(db_path)
        try:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise RegistryUnavailableError("open", str(exc)) from exc
        self._ensure_schema()
        logger.info("WorkRegistry ready db=%s entries=%s", self._db_path, self.count_entries())

    # ---- low-level helpers ----

    def _get_conn(self) -> sqlite3.Connection:
        # Autocommit mode: transactions are opened explicitly in _transaction().
        conn = sqlite3.connect(str(self._db_path), timeout=30.0, isolation_level=None)
        conn.row_factory = sqlite3.Row
        self._configure_conn(conn)
        return conn

    @staticmethod
    def _configure_conn(conn: sqlite3.Connection) -> None:
        with contextlib.suppress(sqlite3.Error):
            conn.execute("PRAGMA journal_mode=WAL")

    @contextlib.contextmanager
    def _read(self, operation: str) -> Iterator[sqlite3.Cursor]:
        try:
            conn = self._get_conn()
        except sqlite3.Error as exc:
            raise RegistryUnavailableError(operation, str(exc)) from exc
        try:
            yield conn.cursor()
        except sqlite3.Error as exc:
            raise RegistryUnavailableError(operation, str(exc)) from exc
        finally:
            conn.close()

    @contextlib.contextmanager
    def _transaction(self, operation: str) -> Iterator[sqlite3.Cursor]:
        try:
            conn = self._get_conn()
        except sqlite3.Error as exc:
            raise RegistryUnavailableError(operation, str(exc)) from exc
        try:
            cur = conn.cursor()
            cur.execute("BEGIN IMMEDIATE")
            try:
                yield cur
            except BaseException:
                conn.rollback()
                raise
            cur.execute("COMMIT")
        except sqlite3.Error as exc:
            with contextlib.suppress(sqlite3.Error):
                conn.rollback()
            raise RegistryUnavailableError(operation, str(exc)) from exc
        finally:
            conn.close()

    def _ensure_schema(self) -> None:
        with self._transaction("ensure_schema") as cur:
            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS periodic_work (
                    name TEXT PRIMARY KEY,
                    interval_seconds REAL NOT NULL,
                    flex_seconds REAL NOT NULL DEFAULT 0,
                    retry_state TEXT NOT NULL DEFAULT 'fresh',
                    attempt_count INTEGER NOT NULL DEFAULT 0,
                    generation INTEGER NOT NULL DEFAULT 0,
                    next_fire_at REAL NOT NULL,
                    period_started_at REAL,
                    running_since REAL,
                    last_outcome TEXT,
                    last_run_at REAL,
                    last_success_at REAL,
                    cancelled INTEGER NOT NULL DEFAULT 0,
                    created_at REAL NOT NULL,
                    updated_at REAL NOT NULL
                )
                """
            )

            # Migrations (safe): add missing columns.
            cur.execute("PRAGMA table_info(periodic_work)")
            cols = {row["name"] for row in cur.fetchall()}

            def add_col(name: str, decl: str) -> None:
                if name in cols:
                    return
                cur.execute(f"ALTER TABLE periodic_work ADD COLUMN {name} {decl}")
                logger.info("WorkRegistry migration: added column %s", name)

            add_col("generation", "INTEGER NOT NULL DEFAULT 0")
            add_col("period_started_at", "REAL")
            add_col("running_since", "REAL")
            add_col("last_success_at", "REAL")
            add_col("cancelled", "INTEGER NOT NULL DEFAULT 0")

            cur.execute(
                """
                CREATE TABLE IF NOT EXISTS work_runs (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    generation INTEGER NOT NULL,
                    attempt INTEGER NOT NULL,
                    outcome TEXT,
                    started_at REAL NOT NULL,
                    finished_at REAL,
                    error TEXT,
                    applied INTEGER NOT NULL DEFAULT 1
                )
                """
            )
            cur.execute(
                "CREATE INDEX IF NOT EXISTS idx_work_due ON periodic_work(cancelled, next_fire_at)"
            )
            cur.execute("CREATE INDEX IF NOT EXISTS idx_runs_name ON work_runs(name, id)")

    @staticmethod
    def _row_to_entry(row: sqlite3.Row) -> RegistryEntry:
        return RegistryEntry(
            name=str(row["name"]),
            interval_seconds=float(row["interval_seconds"]),
            flex_seconds=float(row["flex_seconds"] or 0.0),
            retry_state=RetryState.from_db(row["retry_state"]),
            attempt_count=int(row["attempt_count"] or 0),
            generation=int(row["generation"] or 0),
            next_fire_at=float(row["next_fire_at"]),
            period_started_at=_opt_float(row["period_started_at"]),
            running_since=_opt_float(row["running_since"]),
            last_outcome=Outcome.from_db(row["last_outcome"]),
            last_run_at=_opt_float(row["last_run_at"]),
            last_success_at=_opt_float(row["last_success_at"]),
            cancelled=bool(row["cancelled"]),
            created_at=float(row["created_at"] or 0.0),
            updated_at=float(row["updated_at"] or 0.0),
        )

    @staticmethod
    def _row_to_run(row: sqlite3.Row) -> TaskRun:
        return TaskRun(
            name=str(row["name"]),
            generation=int(row["generation"]),
            attempt=int(row["attempt"]),
            claimed_at=None,
            started_at=float(row["started_at"]),
            finished_at=_opt_float(row["finished_at"]),
            outcome=Outcome.from_db(row["outcome"]),
            error=row["error"],
        )

    @staticmethod
    def _select(cur: sqlite3.Cursor, name: str) -> sqlite3.Row | None:
        cur.execute("SELECT * FROM periodic_work WHERE name = ?", (name,))
        return cur.fetchone()

    # ---- public API ----

    def count_entries(self) -> int:
        with self._read("count_entries") as cur:
            cur.execute("SELECT COUNT(*) FROM periodic_work")
            (n,) = cur.fetchone()
            return int(n)

    def get_entry(self, name: str) -> RegistryEntry | None:
        with self._read("get_entry") as cur:
            row = self._select(cur, name)
            return self._row_to_entry(row) if row else None

    def list_entries(self, *, include_cancelled: bool = True) -> list[RegistryEntry]:
        sql = "SELECT * FROM periodic_work"
        if not include_cancelled:
            sql += " WHERE cancelled = 0"
        sql += " ORDER BY next_fire_at ASC, name ASC"
        with self._read("list_entries") as cur:
            cur.execute(sql)
            return [self._row_to_entry(r) for r in cur.fetchall()]

    def register(self, definition: TaskDefinition, *, now: float) -> tuple[RegistryEntry, bool]:
        """
        Create-if-absent / replace in one transaction.

        Returns (entry, changed). A cancelled row counts as absent.
        """
        interval_s = definition.interval.total_seconds()
        flex_s = definition.flex_window.total_seconds()
        next_fire_at = now + interval_s

        with self._transaction("register") as cur:
            row = self._select(cur, definition.name)

            if row is None:
                cur.execute(
                    """
                    INSERT INTO periodic_work(
                        name, interval_seconds, flex_seconds,
                        retry_state, attempt_count, generation,
                        next_fire_at, period_started_at, running_since,
                        cancelled, created_at, updated_at
                    )
                    VALUES (?, ?, ?, 'fresh', 0, 0, ?, NULL, NULL, 0, ?, ?)
                    """,
                    (definition.name, interval_s, flex_s, next_fire_at, now, now),
                )
                changed = True
            elif row["cancelled"] or definition.policy == RegistrationPolicy.REPLACE:
                # running_since is left alone: an in-flight run keeps its claim,
                # its outcome is dropped by the generation bump.
                cur.execute(
                    """
                    UPDATE periodic_work
                    SET interval_seconds = ?,
                        flex_seconds = ?,
                        retry_state = 'fresh',
                        attempt_count = 0,
                        generation = generation + 1,
                        next_fire_at = ?,
                        period_started_at = NULL,
                        cancelled = 0,
                        updated_at = ?
                    WHERE name = ?
                    """,
                    (interval_s, flex_s, next_fire_at, now, definition.name),
                )
                changed = True
            else:
                changed = False

            row = self._select(cur, definition.name)
            if row is None:
                raise RuntimeError(f"periodic_work row vanished for {definition.name!r}")
            return self._row_to_entry(row), changed

    def cancel(self, name: str, *, now: float) -> bool:
        with self._transaction("cancel") as cur:
            cur.execute(
                """
                UPDATE periodic_work
                SET cancelled = 1, generation = generation + 1, updated_at = ?
                WHERE name = ? AND cancelled = 0
                """,
                (now, name),
            )
            return cur.rowcount == 1

    def list_due(self, *, now: float, lease_seconds: float, limit: int = 32) -> list[RegistryEntry]:
        """
        Entries whose fire time has passed and that nobody holds a live claim on.

        A claim older than lease_seconds is treated as abandoned.
        """
        with self._read("list_due") as cur:
            cur.execute(
                """
                SELECT *
                FROM periodic_work
                WHERE cancelled = 0
                  AND next_fire_at <= ?
                  AND (running_since IS NULL OR running_since <= ?)
                ORDER BY next_fire_at ASC, name ASC
                    LIMIT ?
                """,
                (float(now), float(now - lease_seconds), int(limit)),
            )
            return [self._row_to_entry(r) for r in cur.fetchall()]

    def next_wakeup_at(self) -> float | None:
        """Earliest deadline among idle active entries, or None if there are none."""
        with self._read("next_wakeup_at") as cur:
            cur.execute(
                "SELECT * FROM periodic_work WHERE cancelled = 0 AND running_since IS NULL"
            )
            deadlines = [self._row_to_entry(r).wakeup_deadline() for r in cur.fetchall()]
        return min(deadlines) if deadlines else None

    def try_claim(self, name: str, *, now: float, lease_seconds: float) -> RegistryEntry | None:
        """
        Atomically mark the entry as running.

        Returns the claimed entry, or None if it is missing, cancelled, not due
        yet, or already claimed by a live run. Claiming an entry that is not
        mid-retry starts a new period: attempt count and retry state reset.
        """
        with self._transaction("try_claim") as cur:
            row = self._select(cur, name)
            if row is None or row["cancelled"]:
                return None
            if float(row["next_fire_at"]) > now:
                return None
            running_since = _opt_float(row["running_since"])
            if running_since is not None and now - running_since < lease_seconds:
                return None
            if running_since is not None:
                logger.warning("Reclaiming %s: claim from %.0f expired", name, running_since)

            if RetryState.from_db(row["retry_state"]) == RetryState.RETRYING:
                cur.execute(
                    "UPDATE periodic_work SET running_since = ?, updated_at = ? WHERE name = ?",
                    (now, now, name),
                )
            else:
                cur.execute(
                    """
                    UPDATE periodic_work
                    SET running_since = ?,
                        retry_state = 'fresh',
                        attempt_count = 0,
                        period_started_at = ?,
                        updated_at = ?
                    WHERE name = ?
                    """,
                    (now, now, now, name),
                )

            row = self._select(cur, name)
            return self._row_to_entry(row) if row else None

    def complete_run(self, run: TaskRun, transition: Transition) -> bool:
        """
        Persist a finished run and release its claim.

        The transition is applied only if the entry still carries this run's
        claim and generation. A REPLACE or cancel in the meantime means the
        outcome is recorded in history but not applied. Returns True if applied.
        """
        finished_at = run.finished_at if run.finished_at is not None else run.started_at

        with self._transaction("complete_run") as cur:
            row = self._select(cur, run.name)

            owns_claim = row is not None and _opt_float(row["running_since"]) == run.claimed_at
            applied = (
                row is not None
                and owns_claim
                and int(row["generation"]) == run.generation
                and not row["cancelled"]
            )

            if applied:
                success_clause = ", last_success_at = ?" if transition.outcome == Outcome.SUCCESS else ""
                params: list[object] = [
                    transition.retry_state.value,
                    int(transition.attempt_count),
                    float(transition.next_fire_at),
                    transition.outcome.value,
                    finished_at,
                    finished_at,
                ]
                if success_clause:
                    params.append(finished_at)
                params.append(run.name)
                cur.execute(
                    f"""
                    UPDATE periodic_work
                    SET retry_state = ?,
                        attempt_count = ?,
                        next_fire_at = ?,
                        last_outcome = ?,
                        last_run_at = ?,
                        updated_at = ?,
                        running_since = NULL{success_clause}
                    WHERE name = ?
                    """,
                    params,
                )
            elif owns_claim:
                cur.execute(
                    "UPDATE periodic_work SET running_since = NULL, updated_at = ? WHERE name = ?",
                    (finished_at, run.name),
                )

            cur.execute(
                """
                INSERT INTO work_runs(
                    name, generation, attempt, outcome, started_at, finished_at, error, applied
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    run.name,
                    run.generation,
                    run.attempt,
                    transition.outcome.value,
                    run.started_at,
                    finished_at,
                    run.error,
                    1 if applied else 0,
                ),
            )

        if not applied:
            logger.info(
                "Discarded outcome of %s (generation=%s): entry replaced, cancelled or reclaimed",
                run.name,
                run.generation,
            )
        return applied

    def list_runs(self, name: str, *, limit: int = 20) -> list[TaskRun]:
        """Most recent runs first."""
        with self._read("list_runs") as cur:
            cur.execute(
                """
                SELECT *
                FROM work_runs
                WHERE name = ?
                ORDER BY id DESC
                    LIMIT ?
                """,
                (name, int(limit)),
            )
            return [self._row_to_run(r) for r in cur.fetchall()]


def _opt_float(value: object) -> float | None:
    return float(value) if value is not None else None  # type: ignore[arg-type]
