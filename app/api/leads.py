from typing import Any, Dict
import logging
from fastapi import APIRouter, Depends, HTTPException, Request, status

from app.api.dependencies import Services, get_services
from app.core.exceptions import ColumnResolutionError, LeadStoreError, SheetFetchError
from app.services.lead_parser import lead_from_submission

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/leads", tags=["leads"])
form_router = APIRouter(tags=["leads"])


def flatten_submission(body: Dict[str, Any]) -> Dict[str, Any]:
    """Accept both a flat label->value payload and the form tool's {data: {fields: [...]}} shape."""
    data = body.get("data")
    if not isinstance(data, dict) or not isinstance(data.get("fields"), list):
        return body

    flat: Dict[str, Any] = {}
    if data.get("submissionId"):
        flat["Submission ID"] = data["submissionId"]
    if data.get("createdAt"):
        flat["Submitted at"] = data["createdAt"]
    for item in data["fields"]:
        label = item.get("label") or item.get("key")
        if not label:
            continue
        value = item.get("value")
        if isinstance(value, list):
            value = ", ".join(str(v) for v in value)
        flat[label] = value
    return flat


@router.post("/sync", status_code=status.HTTP_200_OK)
async def sync_leads(services: Services = Depends(get_services)):
    """Run a full sheet sync now."""
    try:
        synced = await services.lead_sync.sync_all()
    except ColumnResolutionError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    except SheetFetchError as e:
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e))

    report = services.lead_sync.last_report
    return {
        "success": synced,
        "report": report.to_dict() if synced and report else None,
    }


@router.get("/{uid}")
async def get_lead(uid: str, services: Services = Depends(get_services)):
    """Get a lead by submission id."""
    try:
        lead = await services.store.get_by_uid(uid)
    except LeadStoreError as e:
        raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))
    if not lead:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Lead not found")
    return lead


@form_router.post("/webhook-tally", status_code=status.HTTP_200_OK)
async def form_webhook(request: Request, services: Services = Depends(get_services)):
    """Store one form submission as a lead."""
    try:
        body = await request.json()
    except ValueError:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid JSON body")
    if not isinstance(body, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Expected a JSON object")

    try:
        lead = lead_from_submission(
            flatten_submission(body),
            final_answer_field=services.settings.FINAL_ANSWER_FIELD,
            mapping=services.lead_sync.mapping,
        )
    except ColumnResolutionError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e))
    if lead is None:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail="Submission ID is empty")

    try:
        await services.lead_sync.upsert_lead(lead)
    except LeadStoreError as e:
        logger.error("Storing form submission %s failed: %s", lead.uid, e)
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(e))

    logger.info("Form submission %s stored (completed=%s)", lead.uid, lead.completed_test)
    return {"ok": True, "uid": lead.uid, "completed_test": lead.completed_test}
