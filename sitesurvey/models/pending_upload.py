from sqlalchemy import Column, Integer, String, Text

from sitesurvey.database import Base


class PendingUpload(Base):
    __tablename__ = "pending_uploads"

    # Insertion order is replay order.
    seq = Column(Integer, primary_key=True, autoincrement=True)
    id = Column(String, nullable=False, unique=True)
    survey_id = Column(String, nullable=False)
    queued_at = Column(String, nullable=False)
    bundle = Column(Text, nullable=False)
