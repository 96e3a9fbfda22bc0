from sqlalchemy import Column, String, Text

from sitesurvey.database import Base


class SurveyProgress(Base):
    __tablename__ = "survey_progress"

    id = Column(String, primary_key=True)
    site_name = Column(String, nullable=True)
    state = Column(Text, nullable=False)
    last_saved = Column(String, nullable=False)
