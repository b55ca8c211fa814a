from __future__ import annotations

from motor.motor_asyncio import AsyncIOMotorDatabase

from hrsm.repositories.audit_log_repository import AuditLogRepository
from hrsm.repositories.mixed_vacation_repository import MixedVacationRepository
from hrsm.repositories.resigned_employee_repository import ResignedEmployeeRepository
from hrsm.repositories.user_repository import UserRepository
from hrsm.repositories.vacation_balance_repository import VacationBalanceRepository
from hrsm.services.resource_service import RESOURCES


async def ensure_indexes(db: AsyncIOMotorDatabase) -> None:
    """Ensure every index the application relies on.

    - unique (employee_id, year) balances, (policy_id, employee_id)
      applications, resigned employee_id, user email
    - unique (tenant_id, <name field>) for CRUD resources that have one
    - unique (survey_id, user_id) survey responses
    - holiday_settings (tenant_id, campus) unique
    """

    await AuditLogRepository(db).ensure_indexes()
    await VacationBalanceRepository(db).ensure_indexes()
    await MixedVacationRepository(db).ensure_indexes()
    await ResignedEmployeeRepository(db).ensure_indexes()
    await UserRepository(db).ensure_indexes()

    for spec in RESOURCES.values():
        if spec.unique_field:
            await db[spec.collection].create_index([("tenant_id", 1), (spec.unique_field, 1)], unique=True)
        else:
            await db[spec.collection].create_index([("tenant_id", 1), ("created_at", -1)])

    # Leaves
    await db.leaves.create_index([("tenant_id", 1), ("employee_id", 1), ("year", 1)])
    await db.leaves.create_index([("tenant_id", 1), ("status", 1)])

    # Holidays
    await db.holiday_settings.create_index([("tenant_id", 1), ("campus", 1)], unique=True)

    # Notifications and surveys
    await db.notifications.create_index([("tenant_id", 1), ("user_id", 1), ("is_read", 1)])
    await db.survey_assignments.create_index([("survey_id", 1), ("user_id", 1)], unique=True)
    await db.survey_responses.create_index([("survey_id", 1), ("user_id", 1)], unique=True)

    # Audit side collections
    await db.permission_changes.create_index([("tenant_id", 1), ("created_at", -1)])
    await db.permission_changes.create_index("user_id")
    await db.audit_discrepancies.create_index([("tenant_id", 1), ("created_at", -1)])

    # 2FA and backups
    await db.user_2fa.create_index("user_id", unique=True)
    await db.system_backups.create_index([("created_at", -1)])
