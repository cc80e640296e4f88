# backend/leadverify/services/eligibility.py
from dataclasses import dataclass
from typing import List, Optional

from pydantic import BaseModel, Field

from leadverify.models.contact import EligibilityStatus
from .normalizer import country_key, is_present, to_key
from .priority import PriorityConfig, calculate_priority_score, extract_seniority_level

MISSING_EMAIL = "missing_email_address"
NO_RESTRICTIONS = "no_restrictions"
COUNTRY_NOT_ALLOWED = "country_not_in_geo_allow_list"
TITLE_NOT_MATCHING = "title_not_matching_keywords"
ELIGIBLE = "eligible"
RECENTLY_SUBMITTED = "submitted_within_exclusion_window"


class EligibilityConfig(BaseModel):
    geo_allow_list: List[str] = Field(default_factory=list)
    title_keywords: List[str] = Field(default_factory=list)
    senior_title_fallback: List[str] = Field(default_factory=list)

    @classmethod
    def from_campaign(cls, campaign) -> "EligibilityConfig":
        return cls(**(campaign.eligibility_config or {}))


@dataclass(frozen=True)
class EligibilityResult:
    status: EligibilityStatus
    reason: str
    priority_score: Optional[float] = None
    seniority_level: Optional[str] = None

    @property
    def eligible(self) -> bool:
        return self.status == EligibilityStatus.eligible


def evaluate_eligibility(
    title: Optional[str],
    country: Optional[str],
    email: Optional[str],
    config: EligibilityConfig,
) -> EligibilityResult:
    """
    Decide Eligible vs Out_of_Scope for one contact.

    Checks run in order (email, country, title) and the first failure wins.
    Missing inputs fall to Out_of_Scope rather than passing a gate.
    """
    if not is_present(email):
        return EligibilityResult(EligibilityStatus.out_of_scope, MISSING_EMAIL)

    geo = [country_key(c) for c in config.geo_allow_list if is_present(c)]
    keywords = [to_key(k) for k in config.title_keywords if is_present(k)]
    fallback = [to_key(k) for k in config.senior_title_fallback if is_present(k)]

    if not geo and not keywords and not fallback:
        return EligibilityResult(EligibilityStatus.eligible, NO_RESTRICTIONS)

    if geo:
        c = country_key(country)
        if not c or not any(c in allowed or allowed in c for allowed in geo):
            return EligibilityResult(EligibilityStatus.out_of_scope, COUNTRY_NOT_ALLOWED)

    if keywords:
        t = to_key(title)
        matched = bool(t) and (any(k in t for k in keywords) or any(k in t for k in fallback))
        if not matched:
            return EligibilityResult(EligibilityStatus.out_of_scope, TITLE_NOT_MATCHING)

    return EligibilityResult(EligibilityStatus.eligible, ELIGIBLE)


def evaluate_contact(
    title: Optional[str],
    country: Optional[str],
    email: Optional[str],
    config: EligibilityConfig,
    priority: Optional[PriorityConfig] = None,
) -> EligibilityResult:
    """Eligibility plus seniority level and priority score."""
    base = evaluate_eligibility(title, country, email, config)
    level = extract_seniority_level(title)
    score = calculate_priority_score(title, priority or PriorityConfig(), level=level)
    return EligibilityResult(base.status, base.reason, priority_score=score, seniority_level=level)
