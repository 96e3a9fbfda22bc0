from sitesurvey.models.survey_progress import SurveyProgress
from sitesurvey.models.pending_upload import PendingUpload

__all__ = ["SurveyProgress", "PendingUpload"]
