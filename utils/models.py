# Pydantic models for users, vacation requests and API payloads
from enum import Enum
from typing import Optional, List, Dict, Any
from pydantic import BaseModel, Field


class Role(str, Enum):
    EMPLOYEE = "Empleado"
    APPROVER = "Aprobador"


class RequestStatus(str, Enum):
    PENDING = "Pendiente"
    APPROVED = "Aprobada"
    REJECTED = "Rechazada"
    MODIFIED = "Modificada"


class RequestType(str, Enum):
    VACATION = "Vacaciones"
    PERSONAL = "Asuntos Propios"


# Statuses whose days count against the owner's balance
BALANCE_STATUSES = (RequestStatus.APPROVED, RequestStatus.MODIFIED)

WIRE_CONFIG = {"populate_by_name": True}


class LeaveBalance(BaseModel):
    total: int = 0
    used: int = 0
    available: int = 0

    def adjusted(self, delta: int) -> "LeaveBalance":
        """Return a balance with `delta` days added to used and available recomputed."""
        used = self.used + delta
        return LeaveBalance(total=self.total, used=used, available=self.total - used)

    def with_total(self, total: int) -> "LeaveBalance":
        return LeaveBalance(total=total, used=self.used, available=total - self.used)


class User(BaseModel):
    id: int
    name: str
    email: str
    role: Role
    annual_leave: LeaveBalance = Field(default_factory=LeaveBalance, alias="annualLeave")

    model_config = WIRE_CONFIG


class ApprovedBy(BaseModel):
    id: int
    name: str


class RequestDraft(BaseModel):
    start_date: str = Field(..., alias="startDate")
    end_date: str = Field(..., alias="endDate")
    days: int
    type: RequestType = RequestType.VACATION
    status: RequestStatus = RequestStatus.PENDING
    employee_comment: Optional[str] = Field(None, alias="employeeComment")

    model_config = WIRE_CONFIG


class VacationRequest(BaseModel):
    id: int
    user_id: int = Field(..., alias="userId")
    user_name: str = Field("", alias="userName")
    start_date: str = Field(..., alias="startDate")
    end_date: str = Field(..., alias="endDate")
    days: int
    type: RequestType
    status: RequestStatus
    employee_comment: Optional[str] = Field(None, alias="employeeComment")
    approver_comment: Optional[str] = Field(None, alias="approverComment")
    approved_by: Optional[ApprovedBy] = Field(None, alias="approvedBy")
    created_at: str = Field("", alias="createdAt")

    model_config = WIRE_CONFIG

    @property
    def counts_against_balance(self) -> bool:
        return self.status in BALANCE_STATUSES


def to_wire(model: BaseModel) -> Dict[str, Any]:
    """Serialize a model with the sheet's camelCase column names."""
    return model.model_dump(mode="json", by_alias=True, exclude_none=True)


# --- HTTP surface ---

class LoginReq(BaseModel):
    email: str = Field(..., description="Account email")
    password: str = Field(..., description="Account password")


class LoginResp(BaseModel):
    session_id: str
    user: User
    users: List[User]


class UserReq(BaseModel):
    name: str
    email: str
    role: Role = Role.EMPLOYEE
    password: Optional[str] = Field(None, description="Required when creating a user")
    total_leave: Optional[int] = Field(None, description="Annual leave days; defaults to DEFAULT_TOTAL_LEAVE")


class RequestReq(BaseModel):
    start_date: str = Field(..., description="dd/mm/yyyy or yyyy-mm-dd")
    end_date: str = Field(..., description="dd/mm/yyyy or yyyy-mm-dd")
    type: RequestType = RequestType.VACATION
    comment: Optional[str] = None


class StatusReq(BaseModel):
    status: RequestStatus
    comment: Optional[str] = None


class EmployeeDashboardResp(BaseModel):
    balance: LeaveBalance
    requests: List[VacationRequest]


class ApproverDashboardResp(BaseModel):
    pending: List[VacationRequest]
    requests: List[VacationRequest]


class CalendarEvent(BaseModel):
    start: str
    end: str
    title: str
    type: RequestType


class CalendarResp(BaseModel):
    year: int
    month: int
    days: Dict[int, List[CalendarEvent]]
