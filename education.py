from __future__ import annotations

EDUCATION_LEVEL_OPTIONS: list[dict[str, str]] = [
    {"value": "high_school", "label": "High School"},
    {"value": "associate", "label": "Associate Degree"},
    {"value": "bachelor", "label": "Bachelor Degree"},
    {"value": "master", "label": "Master Degree"},
    {"value": "doctorate", "label": "Doctorate/PhD"},
    {"value": "diploma", "label": "Diploma"},
    {"value": "certificate", "label": "Certificate"},
]

_LABELS = {option["value"]: option["label"] for option in EDUCATION_LEVEL_OPTIONS}
_BY_LABEL = {option["label"].lower(): option["value"] for option in EDUCATION_LEVEL_OPTIONS}

EDUCATION_LEVEL_SYNONYMS: dict[str, str] = {
    "bachelors": "bachelor",
    "bachelor degree": "bachelor",
    "bachelor degrees": "bachelor",
    "undergraduate": "bachelor",
    "masters": "master",
    "master's": "master",
    "master's degree": "master",
    "master degree": "master",
    "postgraduate": "master",
    "phd": "doctorate",
    "ph.d.": "doctorate",
    "doctorate/phd": "doctorate",
    "highschool": "high_school",
    "high school": "high_school",
    "associate degree": "associate",
}


def normalize_education_level(level: str | None) -> str:
    """Map free-text education levels onto the canonical tokens.

    Matching is case-insensitive against the token, then the display label,
    then the synonym table. Anything unrecognised comes back exactly as given
    so legacy values are never lost.
    """
    if not level:
        return ""
    key = level.strip().lower()
    if key in _LABELS:
        return key
    if key in _BY_LABEL:
        return _BY_LABEL[key]
    return EDUCATION_LEVEL_SYNONYMS.get(key, level)


def education_level_label(value: str | None) -> str:
    if not value:
        return ""
    return _LABELS.get(value, value)
