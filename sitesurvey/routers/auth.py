from fastapi import APIRouter, Depends

from sitesurvey.dependencies import get_auth_context
from sitesurvey.schemas.session import TokenRequest
from sitesurvey.services.remote import AuthContext
from sitesurvey.utils.response import success_response

router = APIRouter(prefix="/auth", tags=["auth"])


def _token_status(auth: AuthContext) -> dict:
    valid = auth.is_valid
    claims = auth.claims() if valid else None
    return {
        "authenticated": valid,
        "expires_at": auth.expires_at if valid else None,
        "subject": claims.get("sub") if claims else None,
    }


@router.get("/token")
async def token_status(auth: AuthContext = Depends(get_auth_context)):
    return success_response(data=_token_status(auth))


@router.put("/token")
async def issue_token(request: TokenRequest, auth: AuthContext = Depends(get_auth_context)):
    if auth.token is None:
        auth.issue(request.token, request.expires_in)
    else:
        auth.refresh(request.token, request.expires_in)
    return success_response(data=_token_status(auth))


@router.delete("/token")
async def clear_token(auth: AuthContext = Depends(get_auth_context)):
    auth.clear()
    return success_response(message="Token cleared")
