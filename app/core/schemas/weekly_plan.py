from typing import Any, Dict, List, Literal, Optional

from pydantic import BaseModel, Field

from app.shared.messages import render

OutcomeStatus = Literal["success", "warning", "error", "not_found"]


class WarningDetail(BaseModel):
    """One conflicting entity of a partially honored operation."""
    code: str = Field(..., description="Machine readable key, e.g. 'customer_quota_reached'")
    message: str = Field(..., description="English rendering of the key")
    params: Dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def of(cls, code: str, **params) -> "WarningDetail":
        return cls(code=code, message=render(code, **params), params=params)


class OperationOutcome(BaseModel):
    """
    Result of a weekly plan operation.

    Soft business conflicts come back here as status 'warning' with one
    detail per conflicting entity; hard failures are raised as HTTP errors.
    """
    status: OutcomeStatus = "success"
    message: str = Field(..., description="Message key")
    detail: str = Field("", description="English rendering of the message key")
    params: Dict[str, Any] = Field(default_factory=dict)
    warnings: List[WarningDetail] = Field(default_factory=list)
    data: Optional[Any] = None

    @classmethod
    def success(cls, message: str, data: Any = None, warnings: Optional[List[WarningDetail]] = None, **params):
        return cls(
            status="warning" if warnings else "success",
            message=message,
            detail=render(message, **params),
            params=params,
            warnings=warnings or [],
            data=data,
        )

    @classmethod
    def warning(cls, message: str, warnings: Optional[List[WarningDetail]] = None, data: Any = None, **params):
        return cls(
            status="warning",
            message=message,
            detail=render(message, **params),
            params=params,
            warnings=warnings or [],
            data=data,
        )

    def warning_codes(self) -> List[str]:
        return [w.code for w in self.warnings]


# --- Requests ---

class SetTimezoneRequest(BaseModel):
    timezone: str = Field(..., min_length=1, description="IANA timezone, e.g. 'Europe/Vilnius'")


class AssignMenusRequest(BaseModel):
    menus: List[str] = Field(..., min_length=1, description="Weekly menu template ids")


class PublishRequest(BaseModel):
    publish: bool


class CustomerIdsRequest(BaseModel):
    customers: List[str] = Field(..., min_length=1)


class GroupIdsRequest(BaseModel):
    groups: List[str] = Field(..., min_length=1)


class RemoveCustomerRequest(BaseModel):
    customer_id: str


class RemoveGroupRequest(BaseModel):
    group_id: str


# --- Responses ---

class MenuSummary(BaseModel):
    id: str
    title: str
    description: Optional[str] = None
    preferences: List[str] = Field(default_factory=list)
    restrictions: List[str] = Field(default_factory=list)


class AssignedMenuResponse(BaseModel):
    id: str
    menu: Optional[MenuSummary] = None
    from_snapshot: bool = False
    published: bool
    assigned_customers: List[str]
    assigned_groups: List[str]


class WeeklyPlanResponse(BaseModel):
    id: str
    year: int
    week_number: int
    status: str
    is_snapshot: bool
    timezone: Optional[str] = None
    assign_menu: List[AssignedMenuResponse]


class RosterCustomer(BaseModel):
    id: str
    name: str


class RosterGroup(BaseModel):
    id: str
    name: str
    members: List[str]


class AssignedMenuDetails(BaseModel):
    weekly_plan_id: str
    expired: bool
    assigned_menu_id: str
    menu: Optional[MenuSummary] = None
    published: bool
    customers: List[RosterCustomer]
    groups: List[RosterGroup]
