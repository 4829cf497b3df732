"""
Leave Balance Ledger

One row per (employee, leave type, year) holding the entitlement (total),
the days consumed by approved requests (used) and the days held by pending
requests (pending). ``available`` is derived, never stored.

Architecture:
- reserve / release / commit / uncommit are ledger *steps*: they lock the row
  (SELECT ... FOR UPDATE), mutate it and flush, but never commit. The
  lifecycle service runs them inside the same transaction as the status
  change so both land or neither does.
- adjust is a top-level administrator operation and owns its transaction.
"""
from datetime import date
from typing import Callable, List, Optional

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from leave_ledger.core.exceptions import InsufficientBalance, NotFoundError, ValidationError
from leave_ledger.database import transaction
from leave_ledger.models.leave_balance import LeaveBalance
from leave_ledger.models.leave_type import LeaveType
from leave_ledger.services.audit import AuditService
from leave_ledger.services.base import BaseService

# Dialects configured by database.py; both support ON CONFLICT DO NOTHING
_CONFLICT_INSERTS = {
    "postgresql": pg_insert,
    "sqlite": sqlite_insert,
}


def _validate_days(days: float) -> float:
    if days is None or days <= 0:
        raise ValidationError(f"Number of days must be positive, got {days}")
    return float(days)


class LeaveBalanceService(BaseService):

    def __init__(self, db, today: Callable[[], date] = date.today):
        super().__init__(db)
        self.today = today

    # --- Reads ---

    def get_balance(self, employee_id: str, leave_type_id: int, year: int) -> Optional[LeaveBalance]:
        return (
            self.db.query(LeaveBalance)
            .filter(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_type_id == leave_type_id,
                LeaveBalance.year == year
            )
            .first()
        )

    def list_balances(self, employee_id: str, year: Optional[int] = None) -> List[LeaveBalance]:
        query = self.db.query(LeaveBalance).filter(LeaveBalance.employee_id == employee_id)
        if year is not None:
            query = query.filter(LeaveBalance.year == year)
        return query.order_by(LeaveBalance.year.desc(), LeaveBalance.leave_type_id).all()

    def get_available(self, employee_id: str, leave_type_id: int, year: int) -> float:
        """max(0, total - used - pending); a missing row counts as a fresh annual entitlement."""
        balance = self.get_balance(employee_id, leave_type_id, year)
        if balance is not None:
            return balance.available
        leave_type = self.db.get(LeaveType, leave_type_id)
        if leave_type is None:
            raise NotFoundError(f"Leave type {leave_type_id} not found")
        return leave_type.annual_entitlement

    # --- Ledger steps (run inside the caller's transaction) ---

    def _lock_balance(self, employee_id: str, leave_type_id: int, year: int) -> Optional[LeaveBalance]:
        return (
            self.db.query(LeaveBalance)
            .filter(
                LeaveBalance.employee_id == employee_id,
                LeaveBalance.leave_type_id == leave_type_id,
                LeaveBalance.year == year
            )
            .with_for_update()
            .populate_existing()
            .first()
        )

    def get_or_create_balance(self, employee_id: str, leave_type_id: int, year: int) -> LeaveBalance:
        """Returns the locked ledger row, creating it from the type's annual entitlement if needed."""
        balance = self._lock_balance(employee_id, leave_type_id, year)
        if balance is not None:
            return balance

        leave_type = self.db.get(LeaveType, leave_type_id)
        if leave_type is None:
            raise NotFoundError(f"Leave type {leave_type_id} not found")

        values = {
            "employee_id": employee_id,
            "leave_type_id": leave_type_id,
            "year": year,
            "total": leave_type.annual_entitlement,
            "used": 0.0,
            "pending": 0.0,
        }
        if self._insert_if_absent(values):
            self.log_info(
                f"Opened {year} balance for employee {employee_id}",
                leave_type_id=leave_type_id,
                total=values["total"]
            )

        # A concurrent first booking may have inserted the row instead; lock whichever one won
        return self._lock_balance(employee_id, leave_type_id, year)

    def _insert_if_absent(self, values: dict) -> bool:
        """INSERT ... ON CONFLICT DO NOTHING on the balance key. Returns True if a row was written."""
        insert = _CONFLICT_INSERTS[self.db.get_bind().dialect.name]
        stmt = (
            insert(LeaveBalance.__table__)
            .values(**values)
            .on_conflict_do_nothing(index_elements=["employee_id", "leave_type_id", "year"])
        )
        return self.db.execute(stmt).rowcount == 1

    def reserve(self, employee_id: str, leave_type_id: int, year: int, days: float) -> LeaveBalance:
        days = _validate_days(days)
        balance = self.get_or_create_balance(employee_id, leave_type_id, year)
        available = balance.available
        if available < days:
            self.log_warning(
                f"Reservation of {days} days refused for employee {employee_id}",
                leave_type_id=leave_type_id,
                available=available
            )
            raise InsufficientBalance(
                f"Insufficient balance. Requested: {days:g}, Available: {available:g}",
                details={"requested": days, "available": available, "year": year}
            )
        balance.pending += days
        self.db.flush()
        return balance

    def release(self, employee_id: str, leave_type_id: int, year: int, days: float) -> LeaveBalance:
        days = _validate_days(days)
        balance = self.get_or_create_balance(employee_id, leave_type_id, year)
        balance.pending = max(0.0, balance.pending - days)
        self.db.flush()
        return balance

    def commit(self, employee_id: str, leave_type_id: int, year: int, days: float) -> LeaveBalance:
        days = _validate_days(days)
        balance = self.get_or_create_balance(employee_id, leave_type_id, year)
        balance.pending = max(0.0, balance.pending - days)
        balance.used += days
        self.db.flush()
        return balance

    def uncommit(self, employee_id: str, leave_type_id: int, year: int, days: float) -> LeaveBalance:
        days = _validate_days(days)
        balance = self.get_or_create_balance(employee_id, leave_type_id, year)
        balance.used = max(0.0, balance.used - days)
        self.db.flush()
        return balance

    # --- Administrator adjustment ---

    def adjust(
        self,
        employee_id: str,
        leave_type_id: int,
        adjustment: float,
        reason: str,
        actor_id: Optional[str] = None,
        actor_role: Optional[str] = None,
        year: Optional[int] = None
    ) -> LeaveBalance:
        """
        Change an employee's entitlement.

        Sign convention: a positive adjustment adds days to ``total``, a
        negative one removes days from it. ``used`` and ``pending`` are only
        ever moved by the request lifecycle. The reason is mandatory and is
        stored in the audit log together with the before/after figures.
        """
        if not employee_id or not str(employee_id).strip():
            raise ValidationError("employee_id is required for a balance adjustment")
        if leave_type_id is None:
            raise ValidationError("leave_type_id is required for a balance adjustment")
        if reason is None or not reason.strip():
            raise ValidationError("A reason is required for a balance adjustment")
        if adjustment is None or adjustment == 0:
            raise ValidationError("Adjustment must be a non-zero number of days")

        year = year or self.today().year

        with transaction(self.db):
            balance = self.get_or_create_balance(employee_id, leave_type_id, year)
            before = balance.snapshot()
            new_total = balance.total + adjustment
            if new_total < 0:
                raise ValidationError(
                    f"Adjustment of {adjustment:g} would make the entitlement negative ({new_total:g})",
                    details={"total": balance.total, "adjustment": adjustment}
                )
            balance.total = new_total
            self.db.flush()

            AuditService.log(
                self.db,
                action="adjust_leave_balance",
                entity_type="leave_balance",
                entity_id=balance.id,
                user_id=actor_id,
                user_role=actor_role,
                details={
                    "employee_id": employee_id,
                    "leave_type_id": leave_type_id,
                    "year": year,
                    "adjustment": adjustment,
                    "reason": reason.strip()
                },
                before_state=before,
                after_state=balance.snapshot()
            )

        self.log_info(
            f"Adjusted balance for employee {employee_id} by {adjustment:g} days",
            leave_type_id=leave_type_id,
            year=year
        )
        return balance
