# backend/leadverify/services/priority.py
# Priority score: seniority weight + title alignment, clamped to 0-100.
# Only used to rank contacts when an account's cap is scarce.
import re
from typing import List, Optional

from pydantic import BaseModel, Field, model_validator

from .normalizer import to_key, is_present

# checked in order; "vice president" must win over "president"
SENIORITY_KEYWORDS = [
    ("vp", ["vice president", "vp", "svp", "evp", "avp", "head of"]),
    ("c_level", ["chief", "ceo", "cfo", "cto", "cio", "ciso", "coo", "cmo", "cro",
                 "founder", "co-founder", "owner", "president", "partner"]),
    ("director", ["director", "dir"]),
    ("manager", ["manager", "mgr", "lead", "supervisor", "principal"]),
    ("individual_contributor", ["engineer", "analyst", "specialist", "associate",
                                "coordinator", "consultant", "administrator", "developer",
                                "representative", "assistant", "architect"]),
]

LEVEL_SCORES = {
    "c_level": 1.0,
    "vp": 0.85,
    "director": 0.7,
    "manager": 0.5,
    "individual_contributor": 0.25,
    "unknown": 0.1,
}

_PATTERNS = [
    (level, [re.compile(r"\b" + re.escape(kw) + r"\b") for kw in keywords])
    for level, keywords in SENIORITY_KEYWORDS
]


class PriorityConfig(BaseModel):
    target_job_titles: List[str] = Field(default_factory=list)
    target_seniority_levels: List[str] = Field(default_factory=list)
    seniority_weight: float = Field(0.7, ge=0, le=1)
    title_alignment_weight: float = Field(0.3, ge=0, le=1)

    @model_validator(mode="after")
    def _weights_sum_to_one(self):
        total = self.seniority_weight + self.title_alignment_weight
        if abs(total - 1.0) > 0.001:
            raise ValueError(f"weights must sum to 1.0 (got {total:.3f})")
        unknown = set(self.target_seniority_levels) - set(LEVEL_SCORES)
        if unknown:
            raise ValueError(f"unknown seniority levels: {sorted(unknown)}")
        return self

    @classmethod
    def from_campaign(cls, campaign) -> "PriorityConfig":
        return cls(**(campaign.priority_config or {}))


def extract_seniority_level(title: Optional[str]) -> str:
    t = to_key(title)
    if not t:
        return "unknown"
    for level, patterns in _PATTERNS:
        if any(p.search(t) for p in patterns):
            return level
    return "unknown"


def seniority_score(level: str, target_levels: List[str]) -> float:
    base = LEVEL_SCORES.get(level, LEVEL_SCORES["unknown"])
    if not target_levels:
        return base
    # outside the campaign's targets still ranks, just lower
    return 1.0 if level in target_levels else base * 0.5


def title_alignment(title: Optional[str], target_titles: List[str]) -> float:
    t = to_key(title)
    targets = [to_key(x) for x in target_titles if is_present(x)]
    if not t or not targets:
        return 0.0

    best = 0.0
    title_tokens = set(t.split())
    for target in targets:
        if t == target:
            return 1.0
        if target in t or t in target:
            best = max(best, 0.75)
            continue
        target_tokens = set(target.split())
        overlap = len(title_tokens & target_tokens) / len(target_tokens)
        best = max(best, round(0.6 * overlap, 4))
    return best


def calculate_priority_score(title: Optional[str], config: PriorityConfig, level: Optional[str] = None) -> float:
    level = level or extract_seniority_level(title)
    raw = (
        config.seniority_weight * seniority_score(level, config.target_seniority_levels)
        + config.title_alignment_weight * title_alignment(title, config.target_job_titles)
    )
    score = raw * 100
    # clamp 0-100
    if score < 0:
        score = 0.0
    if score > 100:
        score = 100.0
    return round(score, 2)
