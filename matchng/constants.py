"""
Static reference data for matching and storage.

Weights, industry trend coefficients and the skill taxonomy are fixed
configuration; the weight invariant is checked once at import time.
"""

import math

WEIGHTS = {
    "skill": 0.5,
    "location": 0.3,
    "trend": 0.2,
}

if not math.isclose(sum(WEIGHTS.values()), 1.0):
    raise ValueError(f"Score weights must sum to 1.0, got {sum(WEIGHTS.values())}")

# Results below this final score are dropped from recommendations
MIN_FINAL_SCORE = 0.25

# Out-of-industry jobs are only admitted when the skill overlap is this strong
CROSS_INDUSTRY_SKILL_THRESHOLD = 0.75

DEFAULT_TREND_SCORE = 0.4

NIGERIA_STATES = [
    "Lagos", "Abuja (FCT)", "Kano", "Rivers", "Oyo", "Kaduna",
    "Enugu", "Edo", "Anambra", "Bauchi", "Benue",
]

INDUSTRIES = [
    "Technology", "Agriculture", "Renewable Energy", "Manufacturing",
    "Retail", "Education", "Construction", "Logistics",
]

TREND_DATA = [
    {"industry": "Technology", "growth_rate": 0.15, "avg_skill_demand": 0.9, "trend_score": 0.85},
    {"industry": "Agriculture", "growth_rate": 0.12, "avg_skill_demand": 0.6, "trend_score": 0.75},
    {"industry": "Renewable Energy", "growth_rate": 0.18, "avg_skill_demand": 0.5, "trend_score": 0.82},
    {"industry": "Manufacturing", "growth_rate": 0.04, "avg_skill_demand": 0.4, "trend_score": 0.45},
    {"industry": "Banking", "growth_rate": 0.08, "avg_skill_demand": 0.7, "trend_score": 0.65},
]

TREND_INDEX = {t["industry"]: t["trend_score"] for t in TREND_DATA}

SKILL_TAXONOMY = [
    {"id": "React.js", "category": "Tech"},
    {"id": "Python", "category": "Tech"},
    {"id": "Frontend Development", "category": "Tech"},
    {"id": "Generator Repair", "category": "Local"},
    {"id": "Vulcanizer", "category": "Local"},
    {"id": "Okada Rider", "category": "Logistics"},
    {"id": "Digital Marketing", "category": "Marketing"},
    {"id": "Plumbing", "category": "Trade"},
    {"id": "Electrical Work", "category": "Trade"},
    {"id": "Graphic Design", "category": "Creative"},
    {"id": "Customer Service", "category": "Soft"},
    {"id": "Computer Literacy", "category": "Soft"},
]

SKILL_ALIASES = {
    "JS": "React.js",
    "Javascript": "React.js",
    "MS Word": "Computer Literacy",
    "Repairman": "Generator Repair",
}

# Storage
STORAGE_PREFIX = "matchNG"
STORAGE_VERSION = 1
STORAGE_QUOTA_BYTES = 5 * 1024 * 1024
DRAFTS_NAMESPACE = "drafts"
SENSITIVE_FIELDS = frozenset({"fullName", "name", "email", "bio", "companyBio"})

# Logical keys
USERS_KEY = "users"
JOBS_KEY = "jobs"
SESSION_KEY = "session"
QUEUE_KEY = "queue"
DEAD_LETTER_KEY = "queue:dead"
