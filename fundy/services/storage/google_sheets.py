"""
Google Sheets Storage Implementation

DESIGN DECISION: Google Sheets is offered as a storage backend because:
1. Non-technical users can view their ledger directly in Sheets
2. No database setup required
3. Built-in backup (Google's infrastructure)
4. Easy to export/migrate later

TRADEOFFS:
- Not suitable for high-volume data (we're fine for personal use)
- No native transactions. `atomic()` buffers inserts and deletes in
  memory and flushes them in one batch on commit, so a failure before
  commit writes nothing. Updates are applied immediately.
- Limited query capabilities (we filter in Python)
- Reads inside an open unit of work do not see its buffered writes
"""

import json
from contextlib import asynccontextmanager
from contextvars import ContextVar
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import Any, Optional
from uuid import UUID

import gspread
from google.oauth2.service_account import Credentials
from tenacity import retry, stop_after_attempt, wait_exponential

from fundy.config import get_settings
from fundy.models.audit import AuditEvent, AuditEventType, AuditSeverity
from fundy.models.ledger import (
    Budget,
    ExpenseCategory,
    IncomeSource,
    SavingsGoal,
    Transaction,
    TransactionType,
    TransferType,
    Wallet,
    WalletType,
    utc_now,
)
from fundy.services.storage.interface import (
    AuditStorageInterface,
    BudgetStorageInterface,
    ConnectionError,
    GoalStorageInterface,
    LedgerStorageInterface,
    NotFoundError,
    StorageError,
    WalletStorageInterface,
)
from fundy.services.storage.memory import sort_newest_first


TRANSACTION_COLUMNS = [
    "id",
    "owner_id",
    "description",
    "amount",
    "type",
    "category",
    "source",
    "wallet_id",
    "goal_name",
    "asset_name",
    "transfer_type",
    "date",
    "created_at",
    "updated_at",
]

WALLET_COLUMNS = [
    "id",
    "owner_id",
    "name",
    "wallet_type",
    "color",
    "icon",
    "is_active",
    "created_at",
]

GOAL_COLUMNS = [
    "id",
    "owner_id",
    "goal_name",
    "target_amount",
    "allocated_amount",
    "target_date",
    "created_at",
    "updated_at",
]

BUDGET_COLUMNS = [
    "id",
    "owner_id",
    "category",
    "amount",
    "month",
    "year",
    "created_at",
    "updated_at",
]

AUDIT_COLUMNS = [
    "event_id",
    "timestamp",
    "event_type",
    "severity",
    "owner_id",
    "entity_type",
    "entity_id",
    "correlation_id",
    "description",
    "details_json",
    "error_message",
    "is_user_action",
]


def _safe_getter(row: list):
    """Handle short rows gracefully."""
    def safe_get(index: int, default: str = "") -> str:
        try:
            return row[index] if row[index] else default
        except IndexError:
            return default
    return safe_get


@dataclass
class _PendingWrites:
    """Writes buffered by an open unit of work."""
    inserts: list[list] = field(default_factory=list)
    deletes: set[str] = field(default_factory=set)


_pending: ContextVar[Optional[_PendingWrites]] = ContextVar(
    "fundy_sheets_pending", default=None
)


class GoogleSheetsClient:
    """
    Low-level Google Sheets client wrapper.

    Handles authentication and provides retry logic for API calls.
    """

    def __init__(self):
        self._client: Optional[gspread.Client] = None
        self._spreadsheet: Optional[gspread.Spreadsheet] = None
        self._settings = get_settings().google_sheets

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    def connect(self) -> gspread.Client:
        """
        Establish connection to Google Sheets.

        Uses service account credentials for authentication.
        """
        if self._client is None:
            try:
                scopes = [
                    "https://www.googleapis.com/auth/spreadsheets",
                    "https://www.googleapis.com/auth/drive",
                ]
                credentials = Credentials.from_service_account_file(
                    self._settings.credentials_path,
                    scopes=scopes,
                )
                self._client = gspread.authorize(credentials)
            except FileNotFoundError:
                raise ConnectionError(
                    f"Google credentials file not found: {self._settings.credentials_path}"
                )
            except Exception as e:
                raise ConnectionError(f"Failed to connect to Google Sheets: {e}")

        return self._client

    def get_spreadsheet(self) -> gspread.Spreadsheet:
        """Get the configured spreadsheet."""
        if self._spreadsheet is None:
            client = self.connect()
            try:
                self._spreadsheet = client.open_by_key(
                    self._settings.spreadsheet_id
                )
            except gspread.SpreadsheetNotFound:
                raise ConnectionError(
                    f"Spreadsheet not found: {self._settings.spreadsheet_id}"
                )
        return self._spreadsheet

    def _get_or_create(self, title: str, columns: list[str], rows: int) -> gspread.Worksheet:
        spreadsheet = self.get_spreadsheet()
        try:
            sheet = spreadsheet.worksheet(title)
        except gspread.WorksheetNotFound:
            # Create the sheet with headers
            sheet = spreadsheet.add_worksheet(
                title=title,
                rows=rows,
                cols=len(columns),
            )
            sheet.append_row(columns)
        return sheet

    def get_transactions_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(
            self._settings.transactions_sheet_name, TRANSACTION_COLUMNS, 5000
        )

    def get_wallets_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(
            self._settings.wallets_sheet_name, WALLET_COLUMNS, 200
        )

    def get_goals_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(
            self._settings.goals_sheet_name, GOAL_COLUMNS, 200
        )

    def get_budgets_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(
            self._settings.budgets_sheet_name, BUDGET_COLUMNS, 500
        )

    def get_audit_sheet(self) -> gspread.Worksheet:
        return self._get_or_create(
            self._settings.audit_sheet_name, AUDIT_COLUMNS, 5000
        )


class GoogleSheetsLedgerStorage(LedgerStorageInterface):
    """
    Google Sheets implementation of ledger storage.

    One ledger row per sheet row.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _transaction_to_row(self, txn: Transaction) -> list:
        return [
            str(txn.id),
            txn.owner_id,
            txn.description,
            str(txn.amount),
            txn.type.value,
            txn.category or "",
            txn.source.value if txn.source else "",
            str(txn.wallet_id) if txn.wallet_id else "",
            txn.goal_name or "",
            txn.asset_name or "",
            txn.transfer_type.value if txn.transfer_type else "",
            txn.date.isoformat(),
            txn.created_at.isoformat(),
            txn.updated_at.isoformat(),
        ]

    def _row_to_transaction(self, row: list) -> Transaction:
        safe_get = _safe_getter(row)
        return Transaction(
            id=UUID(safe_get(0)),
            owner_id=safe_get(1),
            description=safe_get(2),
            amount=Decimal(safe_get(3)),
            type=TransactionType(safe_get(4)),
            category=safe_get(5) or None,
            source=IncomeSource(safe_get(6)) if safe_get(6) else None,
            wallet_id=UUID(safe_get(7)) if safe_get(7) else None,
            goal_name=safe_get(8) or None,
            asset_name=safe_get(9) or None,
            transfer_type=TransferType(safe_get(10)) if safe_get(10) else None,
            date=datetime.fromisoformat(safe_get(11)),
            created_at=datetime.fromisoformat(safe_get(12)),
            updated_at=datetime.fromisoformat(safe_get(13)),
        )

    def _all_rows(self) -> list[Transaction]:
        sheet = self._client.get_transactions_sheet()
        rows = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                rows.append(self._row_to_transaction(row))
            except (ValueError, ArithmeticError):
                continue  # Skip malformed rows
        return rows

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def _flush(self, pending: _PendingWrites) -> None:
        """Apply a committed unit of work in as few API calls as possible."""
        try:
            sheet = self._client.get_transactions_sheet()
            if pending.deletes:
                all_rows = sheet.get_all_values()
                # Delete bottom-up so row indices stay valid
                for idx in range(len(all_rows), 1, -1):
                    row = all_rows[idx - 1]
                    if row and row[0] in pending.deletes:
                        sheet.delete_rows(idx)
            if pending.inserts:
                sheet.append_rows(pending.inserts, value_input_option="RAW")
        except Exception as e:
            raise StorageError(f"Failed to commit ledger changes: {e}")

    @asynccontextmanager
    async def atomic(self):
        if _pending.get() is not None:
            yield
            return

        pending = _PendingWrites()
        token = _pending.set(pending)
        try:
            yield
        finally:
            _pending.reset(token)
        # Only reached when the block exited cleanly
        await self._flush(pending)

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def insert(self, transaction: Transaction) -> Transaction:
        row = self._transaction_to_row(transaction)
        pending = _pending.get()
        if pending is not None:
            pending.inserts.append(row)
            return transaction
        try:
            sheet = self._client.get_transactions_sheet()
            sheet.append_row(row, value_input_option="RAW")
            return transaction
        except Exception as e:
            raise StorageError(f"Failed to save transaction: {e}")

    async def get(self, owner_id: str, transaction_id: UUID) -> Optional[Transaction]:
        try:
            for txn in self._all_rows():
                if txn.id == transaction_id and txn.owner_id == owner_id:
                    return txn
            return None
        except Exception as e:
            raise StorageError(f"Failed to get transaction: {e}")

    async def list_by_owner(
        self,
        owner_id: str,
        limit: Optional[int] = None,
        offset: int = 0,
        transaction_type: Optional[TransactionType] = None,
    ) -> list[Transaction]:
        try:
            rows = [
                txn for txn in self._all_rows()
                if txn.owner_id == owner_id
                and (transaction_type is None or txn.type == transaction_type)
            ]
        except Exception as e:
            raise StorageError(f"Failed to list transactions: {e}")
        rows = sort_newest_first(rows)
        end = None if limit is None else offset + limit
        return rows[offset:end]

    async def list_by_wallet(
        self,
        owner_id: str,
        wallet_id: UUID,
    ) -> list[Transaction]:
        try:
            rows = [
                txn for txn in self._all_rows()
                if txn.owner_id == owner_id and txn.wallet_id == wallet_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to list wallet transactions: {e}")
        return sort_newest_first(rows)

    async def update(
        self,
        owner_id: str,
        transaction_id: UUID,
        fields: dict[str, Any],
    ) -> Optional[Transaction]:
        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()

            for idx, row in enumerate(all_rows[1:], start=2):  # Row 1 is header
                if not row or row[0] != str(transaction_id):
                    continue
                current = self._row_to_transaction(row)
                if current.owner_id != owner_id:
                    return None
                updated = Transaction.model_validate({
                    **current.model_dump(),
                    **fields,
                    "updated_at": utc_now(),
                })
                sheet.update(
                    range_name=f"A{idx}",
                    values=[self._transaction_to_row(updated)],
                )
                return updated

            return None
        except Exception as e:
            raise StorageError(f"Failed to update transaction: {e}")

    async def delete(self, owner_id: str, transaction_id: UUID) -> bool:
        existing = await self.get(owner_id, transaction_id)
        if existing is None:
            return False

        pending = _pending.get()
        if pending is not None:
            pending.deletes.add(str(transaction_id))
            return True

        try:
            sheet = self._client.get_transactions_sheet()
            all_rows = sheet.get_all_values()
            for idx, row in enumerate(all_rows[1:], start=2):
                if row and row[0] == str(transaction_id):
                    sheet.delete_rows(idx)
                    return True
            return False
        except Exception as e:
            raise StorageError(f"Failed to delete transaction: {e}")


class GoogleSheetsWalletStorage(WalletStorageInterface):

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _wallet_to_row(self, wallet: Wallet) -> list:
        return [
            str(wallet.id),
            wallet.owner_id,
            wallet.name,
            wallet.wallet_type.value,
            wallet.color,
            wallet.icon,
            str(wallet.is_active),
            wallet.created_at.isoformat(),
        ]

    def _row_to_wallet(self, row: list) -> Wallet:
        safe_get = _safe_getter(row)
        return Wallet(
            id=UUID(safe_get(0)),
            owner_id=safe_get(1),
            name=safe_get(2),
            wallet_type=WalletType(safe_get(3, WalletType.BANK_ACCOUNT.value)),
            color=safe_get(4, "#3B82F6"),
            icon=safe_get(5, "wallet"),
            is_active=safe_get(6, "True").lower() == "true",
            created_at=datetime.fromisoformat(safe_get(7)),
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def insert_wallet(self, wallet: Wallet) -> Wallet:
        try:
            sheet = self._client.get_wallets_sheet()
            sheet.append_row(self._wallet_to_row(wallet), value_input_option="RAW")
            return wallet
        except Exception as e:
            raise StorageError(f"Failed to save wallet: {e}")

    async def get_wallet(self, owner_id: str, wallet_id: UUID) -> Optional[Wallet]:
        for wallet in await self.list_wallets(owner_id, include_inactive=True):
            if wallet.id == wallet_id:
                return wallet
        return None

    async def list_wallets(
        self,
        owner_id: str,
        include_inactive: bool = False,
    ) -> list[Wallet]:
        try:
            sheet = self._client.get_wallets_sheet()
            wallets = []
            for row in sheet.get_all_values()[1:]:
                if not row or not row[0]:
                    continue
                try:
                    wallet = self._row_to_wallet(row)
                except ValueError:
                    continue
                if wallet.owner_id == owner_id and (include_inactive or wallet.is_active):
                    wallets.append(wallet)
            return wallets
        except Exception as e:
            raise StorageError(f"Failed to list wallets: {e}")

    async def update_wallet(self, wallet: Wallet) -> Wallet:
        try:
            sheet = self._client.get_wallets_sheet()
            all_rows = sheet.get_all_values()
            for idx, row in enumerate(all_rows[1:], start=2):
                if row and row[0] == str(wallet.id) and row[1] == wallet.owner_id:
                    sheet.update(range_name=f"A{idx}", values=[self._wallet_to_row(wallet)])
                    return wallet
        except Exception as e:
            raise StorageError(f"Failed to update wallet: {e}")
        raise NotFoundError(f"Wallet not found: {wallet.id}")


class GoogleSheetsGoalStorage(GoalStorageInterface):

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _goal_to_row(self, goal: SavingsGoal) -> list:
        return [
            str(goal.id),
            goal.owner_id,
            goal.goal_name,
            str(goal.target_amount),
            str(goal.allocated_amount),
            goal.target_date.isoformat() if goal.target_date else "",
            goal.created_at.isoformat(),
            goal.updated_at.isoformat(),
        ]

    def _row_to_goal(self, row: list) -> SavingsGoal:
        safe_get = _safe_getter(row)
        return SavingsGoal(
            id=UUID(safe_get(0)),
            owner_id=safe_get(1),
            goal_name=safe_get(2),
            target_amount=Decimal(safe_get(3)),
            allocated_amount=Decimal(safe_get(4, "0")),
            target_date=date.fromisoformat(safe_get(5)) if safe_get(5) else None,
            created_at=datetime.fromisoformat(safe_get(6)),
            updated_at=datetime.fromisoformat(safe_get(7)),
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def insert_goal(self, goal: SavingsGoal) -> SavingsGoal:
        try:
            sheet = self._client.get_goals_sheet()
            sheet.append_row(self._goal_to_row(goal), value_input_option="RAW")
            return goal
        except Exception as e:
            raise StorageError(f"Failed to save goal: {e}")

    async def get_goal(self, owner_id: str, goal_id: UUID) -> Optional[SavingsGoal]:
        for goal in await self.list_goals(owner_id):
            if goal.id == goal_id:
                return goal
        return None

    async def list_goals(self, owner_id: str) -> list[SavingsGoal]:
        try:
            sheet = self._client.get_goals_sheet()
            goals = []
            for row in sheet.get_all_values()[1:]:
                if not row or not row[0]:
                    continue
                try:
                    goal = self._row_to_goal(row)
                except (ValueError, ArithmeticError):
                    continue
                if goal.owner_id == owner_id:
                    goals.append(goal)
            return goals
        except Exception as e:
            raise StorageError(f"Failed to list goals: {e}")

    async def set_allocated_amount(
        self,
        owner_id: str,
        goal_id: UUID,
        amount: Decimal,
    ) -> SavingsGoal:
        try:
            sheet = self._client.get_goals_sheet()
            all_rows = sheet.get_all_values()
            for idx, row in enumerate(all_rows[1:], start=2):
                if row and row[0] == str(goal_id) and row[1] == owner_id:
                    goal = self._row_to_goal(row).model_copy(update={
                        "allocated_amount": amount,
                        "updated_at": utc_now(),
                    })
                    sheet.update(range_name=f"A{idx}", values=[self._goal_to_row(goal)])
                    return goal
        except Exception as e:
            raise StorageError(f"Failed to update goal allocation: {e}")
        raise NotFoundError(f"Goal not found: {goal_id}")


class GoogleSheetsBudgetStorage(BudgetStorageInterface):
    """One budget per sheet row; rows are rewritten in place on upsert."""

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _budget_to_row(self, budget: Budget) -> list:
        return [
            str(budget.id),
            budget.owner_id,
            budget.category.value,
            str(budget.amount),
            str(budget.month),
            str(budget.year),
            budget.created_at.isoformat(),
            budget.updated_at.isoformat(),
        ]

    def _row_to_budget(self, row: list) -> Budget:
        safe_get = _safe_getter(row)
        return Budget(
            id=UUID(safe_get(0)),
            owner_id=safe_get(1),
            category=ExpenseCategory(safe_get(2)),
            amount=Decimal(safe_get(3)),
            month=int(safe_get(4)),
            year=int(safe_get(5)),
            created_at=datetime.fromisoformat(safe_get(6)),
            updated_at=datetime.fromisoformat(safe_get(7)),
        )

    def _indexed_budgets(self, sheet: gspread.Worksheet) -> list[tuple[int, Budget]]:
        """(sheet row number, budget) for every readable row."""
        indexed = []
        for idx, row in enumerate(sheet.get_all_values()[1:], start=2):
            if not row or not row[0]:
                continue
            try:
                indexed.append((idx, self._row_to_budget(row)))
            except (ValueError, ArithmeticError):
                continue
        return indexed

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def upsert_budget(self, budget: Budget) -> Budget:
        try:
            sheet = self._client.get_budgets_sheet()
            for idx, existing in self._indexed_budgets(sheet):
                if existing.slot == budget.slot:
                    updated = existing.model_copy(update={
                        "amount": budget.amount,
                        "updated_at": utc_now(),
                    })
                    sheet.update(range_name=f"A{idx}", values=[self._budget_to_row(updated)])
                    return updated
            sheet.append_row(self._budget_to_row(budget), value_input_option="RAW")
            return budget
        except Exception as e:
            raise StorageError(f"Failed to save budget: {e}")

    async def list_budgets(
        self,
        owner_id: str,
        month: Optional[int] = None,
        year: Optional[int] = None,
    ) -> list[Budget]:
        try:
            sheet = self._client.get_budgets_sheet()
            budgets = [
                b for _, b in self._indexed_budgets(sheet)
                if b.owner_id == owner_id
                and (month is None or b.month == month)
                and (year is None or b.year == year)
            ]
        except Exception as e:
            raise StorageError(f"Failed to list budgets: {e}")
        budgets.sort(key=lambda b: (b.year, b.month, b.category.value))
        return budgets

    async def delete_budget(
        self,
        owner_id: str,
        category: ExpenseCategory,
        month: int,
        year: int,
    ) -> bool:
        try:
            sheet = self._client.get_budgets_sheet()
            for idx, budget in self._indexed_budgets(sheet):
                if budget.slot == (owner_id, category, month, year):
                    sheet.delete_rows(idx)
                    return True
            return False
        except Exception as e:
            raise StorageError(f"Failed to delete budget: {e}")


class GoogleSheetsAuditStorage(AuditStorageInterface):
    """
    Google Sheets implementation of audit log storage.

    Audit events are append-only.
    """

    def __init__(self, client: Optional[GoogleSheetsClient] = None):
        self._client = client or GoogleSheetsClient()

    def _row_to_event(self, row: list) -> AuditEvent:
        safe_get = _safe_getter(row)
        return AuditEvent(
            event_id=UUID(safe_get(0)),
            timestamp=datetime.fromisoformat(safe_get(1)),
            event_type=AuditEventType(safe_get(2)),
            severity=AuditSeverity(safe_get(3)),
            owner_id=safe_get(4) or None,
            entity_type=safe_get(5) or None,
            entity_id=safe_get(6) or None,
            correlation_id=UUID(safe_get(7)) if safe_get(7) else None,
            description=safe_get(8),
            details=json.loads(safe_get(9)) if safe_get(9) else {},
            error_message=safe_get(10) or None,
            is_user_action=safe_get(11).lower() == "true",
        )

    def _all_events(self) -> list[AuditEvent]:
        sheet = self._client.get_audit_sheet()
        events = []
        for row in sheet.get_all_values()[1:]:
            if not row or not row[0]:
                continue
            try:
                events.append(self._row_to_event(row))
            except ValueError:
                continue
        return events

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=2, max=10),
        reraise=True,
    )
    async def append_event(self, event: AuditEvent) -> bool:
        try:
            sheet = self._client.get_audit_sheet()
            sheet.append_row(event.to_sheets_row(), value_input_option="RAW")
            return True
        except Exception as e:
            raise StorageError(f"Failed to write audit event: {e}")

    async def get_events_by_entity(
        self,
        entity_type: str,
        entity_id: str,
    ) -> list[AuditEvent]:
        try:
            events = [
                e for e in self._all_events()
                if e.entity_type == entity_type and e.entity_id == entity_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        events.sort(key=lambda e: e.timestamp)
        return events

    async def get_recent_events(
        self,
        owner_id: Optional[str] = None,
        limit: int = 100,
    ) -> list[AuditEvent]:
        try:
            events = [
                e for e in self._all_events()
                if owner_id is None or e.owner_id == owner_id
            ]
        except Exception as e:
            raise StorageError(f"Failed to get audit events: {e}")
        # Sort newest first
        events.sort(key=lambda e: e.timestamp, reverse=True)
        return events[:limit]
