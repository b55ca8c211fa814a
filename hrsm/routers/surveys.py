from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Query

from hrsm.auth import HR_ROLES, get_current_user, require_roles
from hrsm.db import get_db
from hrsm.errors import NotFoundError, ValidationError
from hrsm.schemas import ResourceIn, SurveyPublish, SurveyResponseIn
from hrsm.services.audit_ledger import AuditLedger
from hrsm.services.survey_service import SurveyService
from hrsm.utils import paginate, pagination_meta, serialize_doc

router = APIRouter(prefix="/api/surveys", tags=["surveys"])

HrDep = Depends(require_roles(HR_ROLES))

SURVEY_FIELDS = ("title", "description", "questions", "is_anonymous", "due_date")


def _survey_fields(data: dict, *, partial: bool = False) -> dict:
    fields = {k: v for k, v in data.items() if k in SURVEY_FIELDS}
    errors = []
    if not partial or "title" in fields:
        if not (fields.get("title") or "").strip():
            errors.append("title is required")
    if "questions" in fields and not isinstance(fields["questions"], list):
        errors.append("questions must be a list")
    if errors:
        raise ValidationError("Invalid survey", errors=errors)
    return fields


@router.get("")
async def list_surveys(
    status: Optional[str] = None,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=500),
    user=Depends(get_current_user),
    db=Depends(get_db),
):
    repo = SurveyService(db, user["tenant_id"]).surveys
    flt = {"status": status} if status else {}
    skip, limit = paginate(page, limit)
    total = await repo.count(flt)
    surveys = await repo.list(flt, skip=skip, limit=limit)
    return {"success": True, "surveys": serialize_doc(surveys), "pagination": pagination_meta(total, skip // limit + 1, limit)}


@router.post("", status_code=201)
async def create_survey(payload: ResourceIn, user=HrDep, db=Depends(get_db)):
    fields = _survey_fields(payload.model_dump())
    survey = await SurveyService(db, user["tenant_id"]).surveys.create({**fields, "status": "draft"}, created_by=user["id"])
    await AuditLedger(db).record(user=user, action="survey_created", resource="surveys", resource_id=survey["_id"], after=fields, module="surveys")
    return {"success": True, "survey": serialize_doc(survey)}


@router.get("/{survey_id}")
async def get_survey(survey_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    survey = await SurveyService(db, user["tenant_id"]).surveys.get(survey_id)
    if not survey:
        raise NotFoundError("Survey not found")
    return {"success": True, "survey": serialize_doc(survey)}


@router.put("/{survey_id}")
async def update_survey(survey_id: str, payload: ResourceIn, user=HrDep, db=Depends(get_db)):
    fields = _survey_fields(payload.model_dump(), partial=True)
    if not fields:
        raise ValidationError("No fields to update")
    survey = await SurveyService(db, user["tenant_id"]).surveys.update(survey_id, fields)
    if not survey:
        raise NotFoundError("Survey not found")
    await AuditLedger(db).record(user=user, action="survey_updated", resource="surveys", resource_id=survey_id, after=fields, module="surveys")
    return {"success": True, "survey": serialize_doc(survey)}


@router.delete("/{survey_id}")
async def delete_survey(survey_id: str, user=HrDep, db=Depends(get_db)):
    if not await SurveyService(db, user["tenant_id"]).surveys.delete(survey_id):
        raise NotFoundError("Survey not found")
    await AuditLedger(db).record(user=user, action="survey_deleted", resource="surveys", resource_id=survey_id, module="surveys", severity="high")
    return {"success": True, "message": "Survey deleted"}


@router.post("/{survey_id}/publish")
async def publish_survey(survey_id: str, payload: Optional[SurveyPublish] = None, user=HrDep, db=Depends(get_db)):
    result = await SurveyService(db, user["tenant_id"]).publish(survey_id, user_ids=payload.user_ids if payload else None, actor_id=user["id"])
    return {"success": True, "survey": serialize_doc(result["survey"]), "assigned": result["assigned"]}


@router.post("/{survey_id}/responses", status_code=201)
async def submit_response(survey_id: str, payload: SurveyResponseIn, user=Depends(get_current_user), db=Depends(get_db)):
    response = await SurveyService(db, user["tenant_id"]).submit_response(survey_id, user["id"], payload.answers)
    return {"success": True, "response": serialize_doc(response)}


@router.get("/{survey_id}/responses", dependencies=[HrDep])
async def list_responses(survey_id: str, user=Depends(get_current_user), db=Depends(get_db)):
    responses = await SurveyService(db, user["tenant_id"]).responses(survey_id)
    return {"success": True, "responses": serialize_doc(responses), "count": len(responses)}
