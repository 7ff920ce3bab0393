"""SQLite-backed run log storage."""

from __future__ import annotations

import sqlite3
from datetime import datetime
from pathlib import Path

from ats_optimizer.logging.models import RunLog

DEFAULT_DB_PATH = Path.home() / ".ats-optimizer" / "usage.db"

_COLUMNS = (
    "id",
    "timestamp",
    "mode",
    "initial_score",
    "final_score",
    "iterations",
    "termination_reason",
    "warning_count",
    "elapsed_seconds",
    "total_input_tokens",
    "total_output_tokens",
    "estimated_cost_usd",
    "success",
    "error_message",
)


class UsageStore:
    """SQLite-backed store for run logs with WAL mode."""

    def __init__(self, db_path: str | Path = DEFAULT_DB_PATH):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS run_logs (
                    id TEXT PRIMARY KEY,
                    timestamp TEXT NOT NULL,
                    mode TEXT NOT NULL,
                    initial_score REAL,
                    final_score REAL,
                    iterations INTEGER NOT NULL DEFAULT 0,
                    termination_reason TEXT,
                    warning_count INTEGER NOT NULL DEFAULT 0,
                    elapsed_seconds REAL NOT NULL DEFAULT 0.0,
                    total_input_tokens INTEGER NOT NULL DEFAULT 0,
                    total_output_tokens INTEGER NOT NULL DEFAULT 0,
                    estimated_cost_usd REAL NOT NULL DEFAULT 0.0,
                    success INTEGER NOT NULL DEFAULT 1,
                    error_message TEXT
                )
            """)

    def save_log(self, log: RunLog) -> None:
        """Persist a run log entry."""
        placeholders = ", ".join("?" for _ in _COLUMNS)
        with self._connect() as conn:
            conn.execute(
                f"INSERT OR REPLACE INTO run_logs ({', '.join(_COLUMNS)}) VALUES ({placeholders})",
                (
                    log.id,
                    log.timestamp.isoformat(),
                    log.mode,
                    log.initial_score,
                    log.final_score,
                    log.iterations,
                    log.termination_reason,
                    log.warning_count,
                    log.elapsed_seconds,
                    log.total_input_tokens,
                    log.total_output_tokens,
                    log.estimated_cost_usd,
                    1 if log.success else 0,
                    log.error_message,
                ),
            )

    def get_logs(self, mode: str | None = None, limit: int = 50) -> list[RunLog]:
        """Retrieve run logs, newest first, optionally filtered by mode."""
        columns = ", ".join(_COLUMNS)
        with self._connect() as conn:
            if mode is not None:
                rows = conn.execute(
                    f"SELECT {columns} FROM run_logs WHERE mode = ? ORDER BY timestamp DESC LIMIT ?",
                    (mode, limit),
                ).fetchall()
            else:
                rows = conn.execute(
                    f"SELECT {columns} FROM run_logs ORDER BY timestamp DESC LIMIT ?",
                    (limit,),
                ).fetchall()
        return [self._row_to_log(row) for row in rows]

    def get_monthly_stats(self) -> dict:
        """Get aggregated stats for the current month."""
        now = datetime.now()
        month_start = now.replace(day=1, hour=0, minute=0, second=0, microsecond=0)
        with self._connect() as conn:
            row = conn.execute(
                """SELECT
                       COUNT(*) as total_runs,
                       SUM(total_input_tokens) as total_input,
                       SUM(total_output_tokens) as total_output,
                       SUM(estimated_cost_usd) as total_cost,
                       AVG(final_score) as avg_final_score,
                       AVG(final_score - initial_score) as avg_improvement,
                       SUM(CASE WHEN success = 1 THEN 1 ELSE 0 END) as success_count
                   FROM run_logs
                   WHERE timestamp >= ?""",
                (month_start.isoformat(),),
            ).fetchone()
        return {
            "total_runs": row[0] or 0,
            "total_input_tokens": row[1] or 0,
            "total_output_tokens": row[2] or 0,
            "total_cost_usd": row[3] or 0.0,
            "avg_final_score": round(row[4], 3) if row[4] is not None else None,
            "avg_improvement": round(row[5], 3) if row[5] is not None else None,
            "success_rate": (row[6] / row[0] * 100) if row[0] else 0.0,
            "month": now.strftime("%Y-%m"),
        }

    def get_total_cost(self) -> float:
        """Get total estimated cost across all logs."""
        with self._connect() as conn:
            row = conn.execute("SELECT SUM(estimated_cost_usd) FROM run_logs").fetchone()
        return row[0] or 0.0

    @staticmethod
    def _row_to_log(row: tuple) -> RunLog:
        data = dict(zip(_COLUMNS, row))
        data["timestamp"] = datetime.fromisoformat(data["timestamp"])
        data["success"] = bool(data["success"])
        return RunLog(**data)
