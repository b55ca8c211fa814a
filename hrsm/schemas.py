from __future__ import annotations

from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field


class LoginRequest(BaseModel):
    email: str
    password: str
    otp_code: Optional[str] = None


class AuthUser(BaseModel):
    id: str
    email: str
    name: Optional[str] = None
    role: str
    tenant_id: str
    permissions: list[str] = Field(default_factory=list)
    department_id: Optional[str] = None
    is_active: Optional[bool] = True


class LoginResponse(BaseModel):
    access_token: str
    token_type: str = "bearer"
    user: AuthUser
    two_factor_setup_required: bool = False


class OtpRequest(BaseModel):
    otp_code: str


class UserCreate(BaseModel):
    email: str
    password: str
    name: Optional[str] = None
    role: str = "employee"
    permissions: list[str] = Field(default_factory=list)
    phone: Optional[str] = None
    department_id: Optional[str] = None
    position_id: Optional[str] = None
    school_id: Optional[str] = None
    employee_code: Optional[str] = None
    hire_date: Optional[str] = None


class UserUpdate(BaseModel):
    name: Optional[str] = None
    role: Optional[str] = None
    permissions: Optional[list[str]] = None
    phone: Optional[str] = None
    department_id: Optional[str] = None
    position_id: Optional[str] = None
    school_id: Optional[str] = None
    employee_code: Optional[str] = None
    hire_date: Optional[str] = None
    is_active: Optional[bool] = None
    reason: Optional[str] = None


class PasswordChange(BaseModel):
    new_password: str
    current_password: Optional[str] = None


class ResourceIn(BaseModel):
    """Free-form body for the plain CRUD resources; checks happen in the service."""

    model_config = ConfigDict(extra="allow")


class LeaveCreate(BaseModel):
    leave_type: str
    start_date: str
    end_date: str
    days: Optional[float] = None
    reason: Optional[str] = None
    employee_id: Optional[str] = None
    campus: Optional[str] = None


class ReviewNote(BaseModel):
    note: Optional[str] = None


class BalanceOperation(BaseModel):
    leave_type: str
    days: float
    year: Optional[int] = None
    reason: Optional[str] = None
    reference: Optional[str] = None


class BalanceAdjust(BaseModel):
    leave_type: str
    allocated: float
    year: int
    reason: Optional[str] = None


class MixedVacationPolicyIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: Optional[str] = None
    description: Optional[str] = None
    start_date: Optional[str] = None
    end_date: Optional[str] = None
    total_days: Any = None
    personal_days_required: Any = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class ResignedEmployeeCreate(BaseModel):
    model_config = ConfigDict(extra="allow")

    employee_id: Optional[str] = None
    resignation_type: Optional[str] = None
    resignation_date: Optional[str] = None
    last_working_day: Optional[str] = None
    resignation_reason: Optional[str] = None
    notes: Optional[str] = None


class PenaltyIn(BaseModel):
    model_config = ConfigDict(extra="allow")

    description: Optional[str] = None
    amount: Any = None
    currency: Optional[str] = None
    notes: Optional[str] = None


class ResignationTypeUpdate(BaseModel):
    resignation_type: Optional[str] = None


class StatusUpdate(BaseModel):
    status: Optional[str] = None


class WeekendDaysUpdate(BaseModel):
    weekend_days: Any = None
    campus: Optional[str] = None


class OfficialHolidaysIn(BaseModel):
    dates: Any = None
    name: Optional[str] = None
    description: Optional[str] = None
    campus: Optional[str] = None


class WeekendWorkDaysIn(BaseModel):
    dates: Any = None
    reason: Optional[str] = None
    campus: Optional[str] = None


class WhitelistIpIn(BaseModel):
    ip: Optional[str] = None
    description: Optional[str] = None


class WhitelistToggle(BaseModel):
    enabled: Optional[bool] = None


class DevelopmentModeIn(BaseModel):
    allowed_users: Optional[list[str]] = None
    maintenance_message: Optional[str] = None


class PasswordTest(BaseModel):
    password: Optional[str] = None


class NotificationIn(BaseModel):
    title: str
    message: str
    user_id: Optional[str] = None
    type: str = "system"
    link: Optional[str] = None
    reference_id: Optional[str] = None


class SurveyPublish(BaseModel):
    user_ids: Optional[list[str]] = None


class SurveyResponseIn(BaseModel):
    answers: dict[str, Any] = Field(default_factory=dict)


class AuditCleanup(BaseModel):
    days: int = 365
