"""Enumerated values, display labels and threshold tables shared across culturemap."""
from __future__ import annotations

# ---------------------------------------------------------------------------
# Enumerations (stored as plain strings)
# ---------------------------------------------------------------------------

ORG_TYPES = (
    "foundation", "government", "cultural_institution", "corporate",
    "nonprofit", "intermediary", "education", "media",
)

INVESTMENT_STATUSES = ("planned", "active", "completed", "cancelled")

INVESTMENT_CATEGORIES = (
    "direct_artist_support", "strategic_planning", "public_art",
    "artist_development", "education_training", "sector_development",
    "institutional_capacity", "infrastructure", "programming", "communications",
)

COMPOUNDING_STATUSES = ("compounding", "not_compounding", "too_early", "unknown")

DECISION_STATUSES = ("upcoming", "deliberating", "locked", "completed")
ACTIVE_DECISION_STATUSES = ("upcoming", "deliberating")
CLOSED_DECISION_STATUSES = ("locked", "completed")

OPPORTUNITY_TYPES = ("grant", "rfp", "commission", "project", "residency", "program", "fellowship")
OPPORTUNITY_STATUSES = ("open", "closing_soon", "closed", "awarded")

NARRATIVE_SOURCE_TYPES = ("institutional", "regional_positioning", "media_coverage", "practitioner")
GAP_LEVELS = ("high", "medium", "low", "aligned")

OUTPUT_TYPES = (
    "directional_brief", "orientation_framework", "state_of_ecosystem",
    "memory_transfer", "field_note", "foundational_text",
)
DELIVERY_STATUSES = ("draft", "published", "delivered", "acknowledged")

# ---------------------------------------------------------------------------
# Display labels
# ---------------------------------------------------------------------------

ORG_TYPE_LABELS = {
    "foundation": "Foundation",
    "government": "Government",
    "cultural_institution": "Cultural Institution",
    "corporate": "Corporate",
    "nonprofit": "Nonprofit",
    "intermediary": "Intermediary",
    "education": "Education",
    "media": "Media",
}

INVESTMENT_CATEGORY_LABELS = {
    "direct_artist_support": "Direct Artist Support",
    "strategic_planning": "Strategic Planning",
    "public_art": "Public Art",
    "artist_development": "Artist Development",
    "education_training": "Education & Training",
    "sector_development": "Sector Development",
    "institutional_capacity": "Institutional Capacity",
    "infrastructure": "Infrastructure",
    "programming": "Programming",
    "communications": "Communications",
}

DECISION_STATUS_LABELS = {
    "upcoming": "Upcoming",
    "deliberating": "Deliberating",
    "locked": "Locked",
    "completed": "Completed",
}

GAP_LABELS = {
    "high": "High Gap",
    "medium": "Medium Gap",
    "low": "Low Gap",
    "aligned": "Aligned",
}

OUTPUT_TYPE_LABELS = {
    "directional_brief": "Directional Brief",
    "orientation_framework": "Orientation Framework",
    "state_of_ecosystem": "State of the Ecosystem",
    "memory_transfer": "Memory Transfer",
    "field_note": "Field Note",
    "foundational_text": "Foundational Text",
}

SUBMISSION_TYPE_LABELS = {
    "opportunity": "Opportunity Submission",
    "decision_flag": "Decision Flag",
    "investment_verification": "Investment Verification",
    "practitioner_tip": "Practitioner Tip",
    "interest_signal": "Interest Signal",
}

ENTITY_TYPE_LABELS = {
    "organization": "Organization",
    "investment": "Investment",
    "decision": "Decision",
    "opportunity": "Opportunity",
    "practitioner": "Practitioner",
    "precedent": "Precedent",
    "narrative": "Narrative",
    "output": "Output",
}

# Entity type -> dashboard page that can open a record of that type
ENTITY_PATHS = {
    "organization": "/ecosystem-map",
    "investment": "/investments",
    "decision": "/decisions",
    "precedent": "/precedents",
    "opportunity": "/opportunities",
    "narrative": "/narratives",
    "output": "/outputs",
    "practitioner": "/ecosystem-map",
}
DEFAULT_ENTITY_PATH = "/dashboard"

# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------

# Days since last review before an entity is considered stale
STALENESS_THRESHOLDS = {
    "organization": 90,
    "investment": 60,
    "decision": 30,
    "opportunity": 14,
    "practitioner": 180,
}
DEFAULT_STALENESS_DAYS = 90

# Investment categories mapped onto practitioner disciplines (approximate)
CATEGORY_TO_DISCIPLINE = {
    "direct_artist_support": "Visual Arts",
    "public_art": "Visual Arts",
    "artist_development": "Visual Arts",
    "programming": "Performance",
    "infrastructure": "Infrastructure",
    "strategic_planning": "Strategic Planning",
    "education_training": "Education",
    "sector_development": "Sector Development",
    "institutional_capacity": "Institutional Capacity",
    "communications": "Communications",
}

UNATTRIBUTED_SOURCE = "Unattributed"
UNCATEGORIZED = "uncategorized"
OTHER_DISCIPLINE = "Other"

# Substrings in practitioner risk_factors that mark them as at risk of leaving
AT_RISK_MARKERS = ("leav", "relocat")
