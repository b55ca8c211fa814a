"""Surveys: publishing creates one assignment and one notification per target user."""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import DuplicateKeyError

from hrsm.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from hrsm.repositories.base_repository import TenantCrudRepository
from hrsm.repositories.user_repository import UserRepository
from hrsm.services.notification_service import NotificationService
from hrsm.utils import new_id, now_utc

logger = logging.getLogger(__name__)


class SurveyService:
    def __init__(self, db: AsyncIOMotorDatabase, tenant_id: str):
        self.tenant_id = tenant_id
        self.surveys = TenantCrudRepository(db, "surveys", tenant_id)
        self._assignments = db["survey_assignments"]
        self._responses = db["survey_responses"]
        self._users = UserRepository(db)
        self._notifications = NotificationService(db)

    async def _get(self, survey_id: str) -> Dict[str, Any]:
        survey = await self.surveys.get(survey_id)
        if not survey:
            raise NotFoundError("Survey not found")
        return survey

    async def publish(self, survey_id: str, *, user_ids: Optional[List[str]] = None, actor_id: str) -> Dict[str, Any]:
        survey = await self._get(survey_id)
        if survey.get("status") == "published":
            raise InvalidStateError("Survey is already published", current="published")
        if user_ids:
            targets = [uid for uid in user_ids if await self._users.get(uid, self.tenant_id)]
        else:
            targets = [u["_id"] for u in await self._users.list_active(self.tenant_id)]
        if not targets:
            raise ValidationError("No target users for survey")

        now = now_utc()
        assignments = [
            {
                "_id": new_id(),
                "tenant_id": self.tenant_id,
                "survey_id": survey_id,
                "user_id": uid,
                "status": "pending",
                "assigned_at": now,
                "assigned_by": actor_id,
            }
            for uid in targets
        ]
        await self._assignments.insert_many(assignments)
        await self._notifications.create_many([
            {
                "_id": new_id(),
                "tenant_id": self.tenant_id,
                "user_id": uid,
                "type": "survey",
                "title": "New survey",
                "message": survey.get("title") or "You have a new survey to complete",
                "link": f"/surveys/{survey_id}",
                "reference_id": survey_id,
                "is_read": False,
                "created_at": now,
            }
            for uid in targets
        ])
        updated = await self.surveys.update(survey_id, {"status": "published", "published_at": now, "assigned_count": len(targets)})
        logger.info("survey %s published to %s users", survey_id, len(targets))
        return {"survey": updated, "assigned": len(targets)}

    async def submit_response(self, survey_id: str, user_id: str, answers: Dict[str, Any]) -> Dict[str, Any]:
        survey = await self._get(survey_id)
        if survey.get("status") != "published":
            raise InvalidStateError("Survey is not open for responses", current=survey.get("status"))
        assignment = await self._assignments.find_one({"survey_id": survey_id, "user_id": user_id})
        if not assignment:
            raise NotFoundError("Survey is not assigned to this user")
        if assignment.get("status") == "completed":
            raise ConflictError("Survey already answered")
        doc = {
            "_id": new_id(),
            "tenant_id": self.tenant_id,
            "survey_id": survey_id,
            "user_id": user_id,
            "answers": answers,
            "submitted_at": now_utc(),
        }
        try:
            await self._responses.insert_one(doc)
        except DuplicateKeyError:
            raise ConflictError("Survey already answered")
        await self._assignments.update_one({"_id": assignment["_id"]}, {"$set": {"status": "completed", "completed_at": doc["submitted_at"]}})
        return doc

    async def responses(self, survey_id: str) -> List[Dict[str, Any]]:
        await self._get(survey_id)
        return await self._responses.find({"survey_id": survey_id, "tenant_id": self.tenant_id}).to_list(length=None)
