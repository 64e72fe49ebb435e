"""
SQLite Storage Implementation

DESIGN DECISION: SQLite is the default backend because:
1. It ships with Python - no server to run for a personal ledger
2. It enforces UNIQUE constraints, which the carry-over sync needs
3. INSERT ... ON CONFLICT DO UPDATE gives us an atomic upsert

The bucket_payments table carries a UNIQUE index on
(account_id, period, bucket_id). Two concurrent syncs for the same bucket
therefore merge into one row instead of creating a duplicate.

Databases created before the index existed may contain duplicates; they
are cleaned up (keep-first) during init, before the index is created.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Iterator, Optional, Union
from uuid import UUID, uuid4

import structlog
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from period_ledger.config import get_settings
from period_ledger.maintenance.dedup import plan_duplicate_removal
from period_ledger.models.audit import AuditEvent, AuditEventType, AuditSeverity
from period_ledger.models.ledger import (
    AccountSettings,
    BucketConfig,
    BucketPayment,
    BucketType,
    Expense,
    FixedPayment,
    MonthData,
    Period,
    PeriodEntities,
    SavingsContribution,
    SavingsSource,
    utcnow,
)
from period_ledger.services.storage.interface import (
    UNSET,
    AuditStorageInterface,
    DuplicateError,
    LedgerStorageInterface,
    NotFoundError,
    ReferencedEntityError,
    StorageConnectionError,
    StorageError,
    _Unset,
)


SCHEMA_SQL = """
PRAGMA journal_mode=WAL;
PRAGMA synchronous=NORMAL;

CREATE TABLE IF NOT EXISTS account_settings (
    account_id TEXT PRIMARY KEY,
    period_start_day INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS bucket_configs (
    id TEXT PRIMARY KEY,
    account_id TEXT NOT NULL,
    name TEXT NOT NULL,
    type TEXT NOT NULL,
    payment_day INTEGER,
    sort_order INTEGER NOT NULL DEFAULT 0
);

CREATE TABLE IF NOT EXISTS expenses (
    id TEXT PRIMARY KEY,
    account_id TEXT NOT NULL,
    period TEXT NOT NULL,
    bucket_id TEXT NOT NULL,
    category_id TEXT NOT NULL,
    amount INTEGER NOT NULL CHECK (amount >= 0),
    name TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS fixed_payments (
    id TEXT PRIMARY KEY,
    account_id TEXT NOT NULL,
    name TEXT NOT NULL,
    amount INTEGER NOT NULL CHECK (amount >= 0),
    due_day INTEGER,
    due_date TEXT,
    category_id TEXT,
    created_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS month_data (
    account_id TEXT NOT NULL,
    period TEXT NOT NULL,
    salary INTEGER NOT NULL DEFAULT 0,
    monthly_limit INTEGER NOT NULL DEFAULT 0,
    paid_fixed_payment_ids TEXT NOT NULL DEFAULT '[]',
    PRIMARY KEY (account_id, period)
);

CREATE TABLE IF NOT EXISTS savings_contributions (
    id TEXT PRIMARY KEY,
    account_id TEXT NOT NULL,
    goal_id TEXT NOT NULL,
    amount INTEGER NOT NULL CHECK (amount >= 0),
    contribution_date TEXT NOT NULL,
    period TEXT NOT NULL,
    source TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS bucket_payments (
    id TEXT PRIMARY KEY,
    account_id TEXT NOT NULL,
    period TEXT NOT NULL,
    bucket_id TEXT NOT NULL,
    amount INTEGER NOT NULL CHECK (amount >= 0),
    paid INTEGER NOT NULL DEFAULT 0,
    due_date TEXT,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS audit_events (
    event_id TEXT PRIMARY KEY,
    timestamp TEXT NOT NULL,
    event_type TEXT NOT NULL,
    severity TEXT NOT NULL,
    account_id TEXT,
    entity_type TEXT,
    entity_id TEXT,
    correlation_id TEXT,
    description TEXT NOT NULL,
    details_json TEXT,
    error_message TEXT
);

CREATE INDEX IF NOT EXISTS ix_expenses_account_period ON expenses (account_id, period);
CREATE INDEX IF NOT EXISTS ix_savings_account_period ON savings_contributions (account_id, period);
CREATE INDEX IF NOT EXISTS ix_audit_correlation ON audit_events (correlation_id);
"""

BUCKET_PAYMENT_UNIQUE_INDEX = "ux_bucket_payment_key"

BUCKET_PAYMENT_COLUMNS = (
    "id, period, bucket_id, amount, paid, due_date, created_at, updated_at"
)

# A locked database is transient; anything else is not worth retrying.
retry_when_busy = retry(
    retry=retry_if_exception_type(StorageConnectionError),
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.1, min=0.1, max=2),
    reraise=True,
)


def _translate_error(e: sqlite3.Error) -> StorageError:
    message = str(e)
    if isinstance(e, sqlite3.IntegrityError) and "UNIQUE" in message:
        return DuplicateError(message)
    if isinstance(e, sqlite3.OperationalError) and (
        "locked" in message or "busy" in message
    ):
        return StorageConnectionError(message)
    return StorageError(message)


def _date_or_none(value: Optional[str]) -> Optional[date]:
    return date.fromisoformat(value) if value else None


class SqliteDatabase:
    """
    Low-level SQLite wrapper.

    Opens one short-lived connection per operation and translates
    sqlite3 errors into storage errors.
    """

    def __init__(
        self,
        path: Optional[Union[str, Path]] = None,
        busy_timeout_seconds: Optional[float] = None,
    ):
        settings = get_settings().storage
        self._path = Path(path or settings.path)
        self._busy_timeout = (
            settings.busy_timeout_seconds
            if busy_timeout_seconds is None
            else busy_timeout_seconds
        )
        self._initialized = False

    @property
    def path(self) -> Path:
        return self._path

    @contextmanager
    def connect(self) -> Iterator[sqlite3.Connection]:
        if not self._initialized:
            self.init_db()
        with self._open() as conn:
            yield conn

    @contextmanager
    def _open(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = sqlite3.connect(str(self._path), timeout=self._busy_timeout)
        except sqlite3.Error as e:
            raise StorageConnectionError(f"Could not open ledger database: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            yield conn
            conn.commit()
        except sqlite3.Error as e:
            conn.rollback()
            raise _translate_error(e) from e
        finally:
            conn.close()

    def init_db(self) -> None:
        self._path.parent.mkdir(parents=True, exist_ok=True)
        with self._open() as conn:
            conn.executescript(SCHEMA_SQL)
            _migrate_database(conn)
        self._initialized = True


def _migrate_database(conn: sqlite3.Connection) -> None:
    """Create the bucket payment unique index, removing legacy duplicates first."""
    indexes = {row["name"] for row in conn.execute("PRAGMA index_list(bucket_payments)")}
    if BUCKET_PAYMENT_UNIQUE_INDEX in indexes:
        return

    rows = conn.execute(
        f"SELECT account_id, {BUCKET_PAYMENT_COLUMNS} FROM bucket_payments "
        "ORDER BY created_at, rowid"
    ).fetchall()
    by_account: dict[str, list[BucketPayment]] = {}
    for row in rows:
        by_account.setdefault(row["account_id"], []).append(_row_to_bucket_payment(row))

    for account_id, payments in by_account.items():
        doomed = plan_duplicate_removal(payments)
        if doomed:
            conn.executemany(
                "DELETE FROM bucket_payments WHERE id = ?",
                [(str(i),) for i in doomed],
            )
            structlog.get_logger().warning(
                "legacy_duplicates_removed",
                account_id=account_id,
                removed=len(doomed),
            )

    conn.execute(
        f"CREATE UNIQUE INDEX {BUCKET_PAYMENT_UNIQUE_INDEX} "
        "ON bucket_payments (account_id, period, bucket_id)"
    )


def _row_to_bucket_payment(row: sqlite3.Row) -> BucketPayment:
    return BucketPayment(
        id=UUID(row["id"]),
        period=Period.parse(row["period"]),
        bucket_id=UUID(row["bucket_id"]),
        amount=int(row["amount"]),
        paid=bool(row["paid"]),
        due_date=_date_or_none(row["due_date"]),
        created_at=datetime.fromisoformat(row["created_at"]),
        updated_at=datetime.fromisoformat(row["updated_at"]),
    )


def _row_to_bucket_config(row: sqlite3.Row) -> BucketConfig:
    return BucketConfig(
        id=UUID(row["id"]),
        name=row["name"],
        type=BucketType(row["type"]),
        payment_day=row["payment_day"],
        order=row["sort_order"],
    )


def _row_to_expense(row: sqlite3.Row) -> Expense:
    return Expense(
        id=UUID(row["id"]),
        period=Period.parse(row["period"]),
        bucket_id=UUID(row["bucket_id"]),
        category_id=UUID(row["category_id"]),
        amount=int(row["amount"]),
        name=row["name"],
    )


def _row_to_fixed_payment(row: sqlite3.Row) -> FixedPayment:
    return FixedPayment(
        id=UUID(row["id"]),
        name=row["name"],
        amount=int(row["amount"]),
        due_day=row["due_day"],
        due_date=_date_or_none(row["due_date"]),
        category_id=UUID(row["category_id"]) if row["category_id"] else None,
    )


def _row_to_savings(row: sqlite3.Row) -> SavingsContribution:
    return SavingsContribution(
        id=UUID(row["id"]),
        goal_id=UUID(row["goal_id"]),
        amount=int(row["amount"]),
        contribution_date=date.fromisoformat(row["contribution_date"]),
        period=Period.parse(row["period"]),
        source=SavingsSource(row["source"]),
    )


class SqliteLedgerStorage(LedgerStorageInterface):
    """
    SQLite implementation of ledger storage.

    Ids are stored as text, dates as ISO strings, periods as "YYYY-MM-DD".
    """

    def __init__(self, database: Optional[SqliteDatabase] = None):
        self._db = database or SqliteDatabase()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    @retry_when_busy
    async def sum_expenses_by_bucket(
        self,
        account_id: str,
        period: Period,
    ) -> dict[UUID, int]:
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT bucket_id, SUM(amount) AS total FROM expenses "
                "WHERE account_id = ? AND period = ? GROUP BY bucket_id",
                (account_id, str(period)),
            ).fetchall()
        return {UUID(row["bucket_id"]): int(row["total"]) for row in rows}

    @retry_when_busy
    async def get_bucket_payment(
        self,
        account_id: str,
        period: Period,
        bucket_id: UUID,
    ) -> Optional[BucketPayment]:
        with self._db.connect() as conn:
            row = conn.execute(
                f"SELECT {BUCKET_PAYMENT_COLUMNS} FROM bucket_payments "
                "WHERE account_id = ? AND period = ? AND bucket_id = ?",
                (account_id, str(period), str(bucket_id)),
            ).fetchone()
        return _row_to_bucket_payment(row) if row else None

    @retry_when_busy
    async def list_entities_for_period(
        self,
        account_id: str,
        period: Period,
    ) -> PeriodEntities:
        key = (account_id, str(period))
        with self._db.connect() as conn:
            expenses = conn.execute(
                "SELECT * FROM expenses WHERE account_id = ? AND period = ? ORDER BY rowid",
                key,
            ).fetchall()
            fixed = conn.execute(
                "SELECT * FROM fixed_payments WHERE account_id = ? ORDER BY created_at, rowid",
                (account_id,),
            ).fetchall()
            payments = conn.execute(
                f"SELECT {BUCKET_PAYMENT_COLUMNS} FROM bucket_payments "
                "WHERE account_id = ? AND period = ? ORDER BY created_at, rowid",
                key,
            ).fetchall()
            savings = conn.execute(
                "SELECT * FROM savings_contributions "
                "WHERE account_id = ? AND period = ? ORDER BY contribution_date, rowid",
                key,
            ).fetchall()
            month = conn.execute(
                "SELECT * FROM month_data WHERE account_id = ? AND period = ?",
                key,
            ).fetchone()

        return PeriodEntities(
            period=period,
            expenses=[_row_to_expense(r) for r in expenses],
            fixed_payments=[_row_to_fixed_payment(r) for r in fixed],
            paid_fixed_payment_ids=(
                {UUID(i) for i in json.loads(month["paid_fixed_payment_ids"])}
                if month else set()
            ),
            bucket_payments=[_row_to_bucket_payment(r) for r in payments],
            savings_contributions=[_row_to_savings(r) for r in savings],
            salary=int(month["salary"]) if month else 0,
            monthly_limit=int(month["monthly_limit"]) if month else 0,
        )

    @retry_when_busy
    async def list_bucket_configs(self, account_id: str) -> list[BucketConfig]:
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM bucket_configs WHERE account_id = ? ORDER BY sort_order, rowid",
                (account_id,),
            ).fetchall()
        return [_row_to_bucket_config(r) for r in rows]

    @retry_when_busy
    async def list_bucket_payments(self, account_id: str) -> list[BucketPayment]:
        with self._db.connect() as conn:
            rows = conn.execute(
                f"SELECT {BUCKET_PAYMENT_COLUMNS} FROM bucket_payments "
                "WHERE account_id = ? ORDER BY created_at, rowid",
                (account_id,),
            ).fetchall()
        return [_row_to_bucket_payment(r) for r in rows]

    @retry_when_busy
    async def get_account_settings(self, account_id: str) -> Optional[AccountSettings]:
        with self._db.connect() as conn:
            row = conn.execute(
                "SELECT period_start_day FROM account_settings WHERE account_id = ?",
                (account_id,),
            ).fetchone()
        return AccountSettings(period_start_day=row["period_start_day"]) if row else None

    # -------------------------------------------------------------------------
    # Bucket payment writes
    # -------------------------------------------------------------------------

    @retry_when_busy
    async def upsert_bucket_payment(
        self,
        account_id: str,
        period: Period,
        bucket_id: UUID,
        amount: int,
        due_date: Optional[date],
        payment_id: Optional[UUID] = None,
    ) -> BucketPayment:
        candidate = BucketPayment(
            id=payment_id or uuid4(),
            period=period,
            bucket_id=bucket_id,
            amount=amount,
            due_date=due_date,
        )
        with self._db.connect() as conn:
            conn.execute(
                """
                INSERT INTO bucket_payments
                    (id, account_id, period, bucket_id, amount, paid, due_date, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, 0, ?, ?, ?)
                ON CONFLICT (account_id, period, bucket_id) DO UPDATE SET
                    amount = excluded.amount,
                    updated_at = CASE
                        WHEN bucket_payments.amount = excluded.amount THEN bucket_payments.updated_at
                        ELSE excluded.updated_at
                    END
                """,
                (
                    str(candidate.id),
                    account_id,
                    str(period),
                    str(bucket_id),
                    candidate.amount,
                    due_date.isoformat() if due_date else None,
                    candidate.created_at.isoformat(),
                    candidate.updated_at.isoformat(),
                ),
            )
            row = conn.execute(
                f"SELECT {BUCKET_PAYMENT_COLUMNS} FROM bucket_payments "
                "WHERE account_id = ? AND period = ? AND bucket_id = ?",
                (account_id, str(period), str(bucket_id)),
            ).fetchone()
        return _row_to_bucket_payment(row)

    def _fetch_payment(self, conn: sqlite3.Connection, payment_id: UUID) -> BucketPayment:
        row = conn.execute(
            f"SELECT {BUCKET_PAYMENT_COLUMNS} FROM bucket_payments WHERE id = ?",
            (str(payment_id),),
        ).fetchone()
        if row is None:
            raise NotFoundError(f"Bucket payment not found: {payment_id}")
        return _row_to_bucket_payment(row)

    @retry_when_busy
    async def update_bucket_payment_amount(
        self,
        payment_id: UUID,
        amount: int,
    ) -> BucketPayment:
        if isinstance(amount, bool) or not isinstance(amount, int) or amount < 0:
            raise ValueError(f"Amount must be a non-negative integer, got {amount!r}")
        with self._db.connect() as conn:
            conn.execute(
                "UPDATE bucket_payments SET amount = ?, updated_at = ? WHERE id = ?",
                (amount, utcnow().isoformat(), str(payment_id)),
            )
            return self._fetch_payment(conn, payment_id)

    @retry_when_busy
    async def set_bucket_payment_status(
        self,
        payment_id: UUID,
        paid: Optional[bool] = None,
        due_date: Union[date, None, _Unset] = UNSET,
    ) -> BucketPayment:
        assignments = ["updated_at = ?"]
        params: list = [utcnow().isoformat()]
        if paid is not None:
            assignments.append("paid = ?")
            params.append(1 if paid else 0)
        if not isinstance(due_date, _Unset):
            assignments.append("due_date = ?")
            params.append(due_date.isoformat() if due_date else None)

        with self._db.connect() as conn:
            conn.execute(
                f"UPDATE bucket_payments SET {', '.join(assignments)} WHERE id = ?",
                (*params, str(payment_id)),
            )
            return self._fetch_payment(conn, payment_id)

    @retry_when_busy
    async def delete_bucket_payments(self, payment_ids: list[UUID]) -> int:
        if not payment_ids:
            return 0
        with self._db.connect() as conn:
            removed = 0
            for payment_id in payment_ids:
                cursor = conn.execute(
                    "DELETE FROM bucket_payments WHERE id = ?",
                    (str(payment_id),),
                )
                removed += cursor.rowcount
        return removed

    # -------------------------------------------------------------------------
    # Other writes
    # -------------------------------------------------------------------------

    @retry_when_busy
    async def save_bucket_config(self, account_id: str, config: BucketConfig) -> BucketConfig:
        with self._db.connect() as conn:
            conn.execute(
                """
                INSERT INTO bucket_configs (id, account_id, name, type, payment_day, sort_order)
                VALUES (?, ?, ?, ?, ?, ?)
                ON CONFLICT (id) DO UPDATE SET
                    name = excluded.name,
                    type = excluded.type,
                    payment_day = excluded.payment_day,
                    sort_order = excluded.sort_order
                """,
                (
                    str(config.id),
                    account_id,
                    config.name,
                    config.type.value,
                    config.payment_day,
                    config.order,
                ),
            )
        return config

    @retry_when_busy
    async def delete_bucket_config(self, account_id: str, bucket_id: UUID) -> bool:
        with self._db.connect() as conn:
            used = conn.execute(
                "SELECT COUNT(*) FROM expenses WHERE account_id = ? AND bucket_id = ?",
                (account_id, str(bucket_id)),
            ).fetchone()[0]
            if used:
                raise ReferencedEntityError(
                    f"Bucket {bucket_id} is still used by {used} expense(s)"
                )
            cursor = conn.execute(
                "DELETE FROM bucket_configs WHERE account_id = ? AND id = ?",
                (account_id, str(bucket_id)),
            )
            return cursor.rowcount > 0

    @retry_when_busy
    async def save_expense(self, account_id: str, expense: Expense) -> Expense:
        with self._db.connect() as conn:
            bucket = conn.execute(
                "SELECT 1 FROM bucket_configs WHERE account_id = ? AND id = ?",
                (account_id, str(expense.bucket_id)),
            ).fetchone()
            if bucket is None:
                raise NotFoundError(f"Bucket not found: {expense.bucket_id}")
            conn.execute(
                """
                INSERT OR REPLACE INTO expenses
                    (id, account_id, period, bucket_id, category_id, amount, name)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(expense.id),
                    account_id,
                    str(expense.period),
                    str(expense.bucket_id),
                    str(expense.category_id),
                    expense.amount,
                    expense.name,
                ),
            )
        return expense

    @retry_when_busy
    async def save_fixed_payment(self, account_id: str, payment: FixedPayment) -> FixedPayment:
        with self._db.connect() as conn:
            conn.execute(
                """
                INSERT INTO fixed_payments
                    (id, account_id, name, amount, due_day, due_date, category_id, created_at)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT (id) DO UPDATE SET
                    name = excluded.name,
                    amount = excluded.amount,
                    due_day = excluded.due_day,
                    due_date = excluded.due_date,
                    category_id = excluded.category_id
                """,
                (
                    str(payment.id),
                    account_id,
                    payment.name,
                    payment.amount,
                    payment.due_day,
                    payment.due_date.isoformat() if payment.due_date else None,
                    str(payment.category_id) if payment.category_id else None,
                    utcnow().isoformat(),
                ),
            )
        return payment

    @retry_when_busy
    async def save_month_data(self, account_id: str, month_data: MonthData) -> MonthData:
        with self._db.connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO month_data
                    (account_id, period, salary, monthly_limit, paid_fixed_payment_ids)
                VALUES (?, ?, ?, ?, ?)
                """,
                (
                    account_id,
                    str(month_data.period),
                    month_data.salary,
                    month_data.monthly_limit,
                    json.dumps(sorted(str(i) for i in month_data.paid_fixed_payment_ids)),
                ),
            )
        return month_data

    @retry_when_busy
    async def save_savings_contribution(
        self,
        account_id: str,
        contribution: SavingsContribution,
    ) -> SavingsContribution:
        with self._db.connect() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO savings_contributions
                    (id, account_id, goal_id, amount, contribution_date, period, source)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    str(contribution.id),
                    account_id,
                    str(contribution.goal_id),
                    contribution.amount,
                    contribution.contribution_date.isoformat(),
                    str(contribution.period),
                    contribution.source.value,
                ),
            )
        return contribution

    @retry_when_busy
    async def save_account_settings(
        self,
        account_id: str,
        settings: AccountSettings,
    ) -> AccountSettings:
        with self._db.connect() as conn:
            conn.execute(
                "INSERT OR REPLACE INTO account_settings (account_id, period_start_day) VALUES (?, ?)",
                (account_id, settings.period_start_day),
            )
        return settings


class SqliteAuditStorage(AuditStorageInterface):
    """
    SQLite implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, database: Optional[SqliteDatabase] = None):
        self._db = database or SqliteDatabase()
        self._logger = structlog.get_logger()

    def _row_to_event(self, row: sqlite3.Row) -> AuditEvent:
        return AuditEvent(
            event_id=UUID(row["event_id"]),
            timestamp=datetime.fromisoformat(row["timestamp"]),
            event_type=AuditEventType(row["event_type"]),
            severity=AuditSeverity(row["severity"]),
            account_id=row["account_id"],
            entity_type=row["entity_type"],
            entity_id=UUID(row["entity_id"]) if row["entity_id"] else None,
            correlation_id=UUID(row["correlation_id"]) if row["correlation_id"] else None,
            description=row["description"],
            details=json.loads(row["details_json"]) if row["details_json"] else {},
            error_message=row["error_message"],
        )

    async def append_event(self, event: AuditEvent) -> bool:
        try:
            with self._db.connect() as conn:
                conn.execute(
                    "INSERT INTO audit_events VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                    event.to_row(),
                )
            return True
        except StorageError as e:
            # Audit logging must not break the main flow
            self._logger.warning(
                "audit_event_write_failed",
                error=str(e),
                event_id=str(event.event_id),
            )
            return False

    @retry_when_busy
    async def get_events_by_correlation_id(
        self,
        correlation_id: UUID,
    ) -> list[AuditEvent]:
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM audit_events WHERE correlation_id = ? ORDER BY timestamp, rowid",
                (str(correlation_id),),
            ).fetchall()
        return [self._row_to_event(r) for r in rows]

    @retry_when_busy
    async def get_recent_events(
        self,
        limit: int = 100,
    ) -> list[AuditEvent]:
        with self._db.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM audit_events ORDER BY timestamp DESC, rowid DESC LIMIT ?",
                (limit,),
            ).fetchall()
        return [self._row_to_event(r) for r in rows]
