"""
Leave Type Registry

Administrators create, edit and retire leave categories here. A type that is
referenced by balances or requests is never hard-deleted; it is deactivated,
which only stops it being chosen for new requests.
"""
from typing import Any, List, Mapping, Optional, Type, Union

import pydantic
from pydantic import BaseModel

from leave_ledger.core.exceptions import ConflictError, NotFoundError, ValidationError
from leave_ledger.database import transaction
from leave_ledger.models.leave_balance import LeaveBalance
from leave_ledger.models.leave_request import LeaveRequest
from leave_ledger.models.leave_type import LeaveType
from leave_ledger.schemas.leave import LeaveTypeCreate, LeaveTypeResponse, LeaveTypeUpdate
from leave_ledger.services.audit import AuditService
from leave_ledger.services.base import BaseService

LeaveTypeFields = Union[BaseModel, Mapping[str, Any]]


def _coerce(fields: LeaveTypeFields, schema: Type[BaseModel]) -> BaseModel:
    """Run raw mappings through the schema so every caller gets the same checks."""
    if isinstance(fields, schema):
        return fields
    if isinstance(fields, BaseModel):
        fields = fields.model_dump()
    try:
        return schema.model_validate(dict(fields))
    except pydantic.ValidationError as e:
        errors = [
            {"field": ".".join(str(p) for p in err["loc"]), "msg": err["msg"]}
            for err in e.errors()
        ]
        missing = [err["field"] for err in errors]
        raise ValidationError(
            f"Invalid leave type fields: {', '.join(missing)}",
            details={"errors": errors}
        )


class LeaveTypeService(BaseService):

    def get_active_leave_types(self) -> List[LeaveType]:
        return (
            self.db.query(LeaveType)
            .filter(LeaveType.active.is_(True))
            .order_by(LeaveType.name)
            .all()
        )

    def list_leave_types(self, include_inactive: bool = True) -> List[LeaveType]:
        if not include_inactive:
            return self.get_active_leave_types()
        return self.db.query(LeaveType).order_by(LeaveType.name).all()

    def get_leave_type_by_id(self, leave_type_id: int) -> LeaveType:
        leave_type = self.db.get(LeaveType, leave_type_id)
        if leave_type is None:
            raise NotFoundError(f"Leave type {leave_type_id} not found")
        return leave_type

    def _ensure_unique_name(self, name: str, exclude_id: Optional[int] = None):
        query = self.db.query(LeaveType).filter(LeaveType.name == name)
        if exclude_id is not None:
            query = query.filter(LeaveType.id != exclude_id)
        if query.first() is not None:
            raise ConflictError(f"A leave type named '{name}' already exists")

    def create_leave_type(self, fields: LeaveTypeFields, actor_id: Optional[str] = None) -> LeaveType:
        data = _coerce(fields, LeaveTypeCreate)
        with transaction(self.db):
            self._ensure_unique_name(data.name)
            leave_type = LeaveType(**data.model_dump())
            self.db.add(leave_type)
            self.db.flush()
            AuditService.log(
                self.db,
                action="create_leave_type",
                entity_type="leave_type",
                entity_id=leave_type.id,
                user_id=actor_id,
                user_role=None,
                details=data.model_dump(),
            )
        self.log_info(f"Created leave type {leave_type.name}", leave_type_id=leave_type.id)
        return leave_type

    def update_leave_type(
        self, leave_type_id: int, fields: LeaveTypeFields, actor_id: Optional[str] = None
    ) -> LeaveType:
        data = _coerce(fields, LeaveTypeUpdate)
        with transaction(self.db):
            leave_type = self.get_leave_type_by_id(leave_type_id)
            self._ensure_unique_name(data.name, exclude_id=leave_type_id)
            before = LeaveTypeResponse.model_validate(leave_type).model_dump()

            changes = data.model_dump(exclude_unset=True)
            # "active" left out of an update keeps the current value
            if changes.get("active") is None:
                changes.pop("active", None)
            for key, value in changes.items():
                setattr(leave_type, key, value)

            self.db.flush()
            AuditService.log(
                self.db,
                action="update_leave_type",
                entity_type="leave_type",
                entity_id=leave_type.id,
                user_id=actor_id,
                user_role=None,
                details={"fields": sorted(changes)},
                before_state=before,
                after_state=LeaveTypeResponse.model_validate(leave_type).model_dump(),
            )
        return leave_type

    def deactivate_leave_type(self, leave_type_id: int, actor_id: Optional[str] = None) -> LeaveType:
        with transaction(self.db):
            leave_type = self.get_leave_type_by_id(leave_type_id)
            if leave_type.active:
                leave_type.active = False
                AuditService.log(
                    self.db,
                    action="deactivate_leave_type",
                    entity_type="leave_type",
                    entity_id=leave_type.id,
                    user_id=actor_id,
                    user_role=None,
                    details={"name": leave_type.name},
                    before_state={"active": True},
                    after_state={"active": False},
                )
        self.log_info(f"Deactivated leave type {leave_type.name}", leave_type_id=leave_type_id)
        return leave_type

    def is_referenced(self, leave_type_id: int) -> bool:
        has_balance = (
            self.db.query(LeaveBalance.id)
            .filter(LeaveBalance.leave_type_id == leave_type_id)
            .first()
        )
        has_request = (
            self.db.query(LeaveRequest.id)
            .filter(LeaveRequest.leave_type_id == leave_type_id)
            .first()
        )
        return has_balance is not None or has_request is not None

    def delete_leave_type(self, leave_type_id: int, actor_id: Optional[str] = None) -> None:
        """Hard delete. Only allowed while nothing references the type."""
        with transaction(self.db):
            leave_type = self.get_leave_type_by_id(leave_type_id)
            if self.is_referenced(leave_type_id):
                raise ConflictError(
                    f"Leave type '{leave_type.name}' is in use by balances or requests; deactivate it instead",
                    details={"leave_type_id": leave_type_id}
                )
            AuditService.log(
                self.db,
                action="delete_leave_type",
                entity_type="leave_type",
                entity_id=leave_type.id,
                user_id=actor_id,
                user_role=None,
                details={"name": leave_type.name},
            )
            self.db.delete(leave_type)
        self.log_info(f"Deleted leave type {leave_type_id}")
