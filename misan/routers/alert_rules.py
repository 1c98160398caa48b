"""Admin alert rule APIs."""
from typing import Optional

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from misan.core.auth import require_admin
from misan.core.responses import result_response
from misan.services.alert_rule_service import create_rule, delete_rule, list_rules, update_rule

router = APIRouter(prefix="/api/admin/alert-rules", dependencies=[Depends(require_admin)])


class AlertRuleRequest(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    triggerType: Optional[str] = None
    target: Optional[str] = None
    comparator: Optional[str] = None
    threshold: Optional[float] = None
    severity: Optional[str] = None
    messageTemplate: Optional[str] = None
    appliesToRole: Optional[str] = None
    isBlocking: bool = False
    isActive: bool = True
    metadata: dict = Field(default_factory=dict)


@router.get("")
async def get_alert_rules():
    return list_rules()


@router.post("")
async def post_alert_rule(req: AlertRuleRequest):
    return result_response(create_rule(req.model_dump()), success_status=201)


@router.put("/{rule_id}")
async def put_alert_rule(rule_id: int, req: AlertRuleRequest):
    return result_response(update_rule(rule_id, req.model_dump()))


@router.delete("/{rule_id}")
async def remove_alert_rule(rule_id: int):
    return result_response(delete_rule(rule_id))
