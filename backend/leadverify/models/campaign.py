# backend/leadverify/models/campaign.py
from sqlalchemy import Column, String, Integer, DateTime, JSON

from leadverify.db import Base
from .common import new_id, utcnow


DEFAULT_OK_EMAIL_STATES = ["ok", "accept_all"]


class Campaign(Base):
    __tablename__ = "campaigns"

    id = Column(String(36), primary_key=True, default=new_id)
    name = Column(String, nullable=False)
    status = Column(String(20), nullable=False, default="active", index=True)
    lead_cap_per_account = Column(Integer, nullable=False, default=10)

    # {"geo_allow_list": [...], "title_keywords": [...], "senior_title_fallback": [...]}
    eligibility_config = Column(JSON, nullable=True)
    # {"target_job_titles": [...], "target_seniority_levels": [...],
    #  "seniority_weight": 0.7, "title_alignment_weight": 0.3}
    priority_config = Column(JSON, nullable=True)
    ok_email_states = Column(JSON, nullable=True, default=lambda: list(DEFAULT_OK_EMAIL_STATES))

    created_at = Column(DateTime(timezone=True), default=utcnow)
    updated_at = Column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
