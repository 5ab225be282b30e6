"""Входящие SMS от провайдера номеров."""

from fastapi import APIRouter, Depends

from number_requests.domain.models import IncomingSmsDTO
from number_requests.entrypoints.api.dependencies import (
    NumberRequestServiceDependency,
    verify_webhook_secret,
)

router = APIRouter()


@router.post("/sms/incoming", dependencies=[Depends(verify_webhook_secret)])
async def incoming_sms(data: IncomingSmsDTO, service: NumberRequestServiceDependency):
    """Доставка SMS по заявке."""
    number_request = await service.deliver_sms(data.request_id, data.message)
    return {
        "request_id": number_request.request_id,
        "status": number_request.status.value,
        "sms_code": number_request.sms_code,
    }
