from fastapi import Header, HTTPException

from sitesurvey.config import settings
from sitesurvey.services.remote import AuthContext, ConnectivityProbe, SurveyApiClient
from sitesurvey.services.sessions import SessionManager
from sitesurvey.services.storage import SurveyStorage
from sitesurvey.services.sync import SyncCoordinator

_auth_context = AuthContext()
_storage = SurveyStorage()
_session_manager = SessionManager(
    _storage,
    autosave_delay=settings.autosave_delay_seconds,
    require_complete_fields=settings.require_complete_fields,
)
_sync_coordinator = SyncCoordinator(
    SurveyApiClient(settings.survey_api_url, _auth_context, timeout=settings.request_timeout_seconds),
    _storage,
    is_online=ConnectivityProbe(settings.survey_api_url, timeout=settings.connectivity_timeout_seconds),
)


async def verify_api_key(x_api_key: str = Header(default="")) -> None:
    if not settings.api_key:
        return
    if x_api_key != settings.api_key:
        raise HTTPException(status_code=403, detail="Invalid or missing API key")


def get_auth_context() -> AuthContext:
    return _auth_context


def get_session_manager() -> SessionManager:
    return _session_manager


def get_sync_coordinator() -> SyncCoordinator:
    return _sync_coordinator
