import logging
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from fhir_broker.container import get_ticket_authority
from fhir_broker.models.auth.dto import Rejection, TokenRequestDto
from fhir_broker.services.auth.permission_ticket_authority import PermissionTicketAuthority

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/broker", tags=["Broker authorization"])


async def read_token_request(request: Request) -> TokenRequestDto:
    """
    Token requests are normally form encoded, a JSON body is accepted as well.
    """
    content_type = request.headers.get("content-type", "")
    if "application/x-www-form-urlencoded" in content_type or "multipart/form-data" in content_type:
        form = await request.form()
        return TokenRequestDto.from_mapping(dict(form))

    try:
        body: Any = await request.json()
    except ValueError:
        logger.info("Token request body is not valid JSON")
        return TokenRequestDto()

    return TokenRequestDto.from_mapping(body)


@router.post("/auth/token", response_model=None, summary="Exchange a client assertion for an access token")
def token(
    token_request: TokenRequestDto = Depends(read_token_request),
    authority: PermissionTicketAuthority = Depends(get_ticket_authority),
) -> Any:
    result = authority.exchange_for_token(token_request.client_assertion)
    if isinstance(result, Rejection):
        return JSONResponse(status_code=400, content=result.model_dump())

    return result.model_dump()
