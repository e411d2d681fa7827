"""
================================================================================
SURVEY FIELDS - Centralized Definitions for All Measured Variables
================================================================================
Gout and Coronary Heart Disease, NHANES 2017-2018 public-use files

This module centralizes every survey field and code map used in the analysis.
Fetching, derivation and modelling reference these definitions -- no scattered
hard-coded field names or response codes elsewhere in the codebase.

Response codes follow the NHANES codebooks. Tables may arrive with numeric
codes (SAS transport files) or with translated text labels, so every code map
lists both forms.
================================================================================
"""

from __future__ import annotations

# ============================================================================
# IDENTIFIER
# ============================================================================

SUBJECT_ID = {
    'name': 'Respondent sequence number',
    'table': 'DEMO',
    'field': 'SEQN',
    'canonical': 'seqn',
    'kind': 'identifier',
    'description': 'Unique participant key shared by every NHANES table',
}

# ============================================================================
# SHARED RESPONSE CODES
# ============================================================================

# 1 = Yes, 2 = No. 7 (Refused), 9 (Don't know), 3 (Borderline, DIQ010) and
# blanks are deliberately absent: they map to missing.
YES_NO_CODES = {
    1: 1,
    2: 0,
    'yes': 1,
    'no': 0,
}

BINARY_LABELS = ('No', 'Yes')

# ============================================================================
# OUTCOME / EXPOSURE
# ============================================================================

CORONARY_HEART_DISEASE = {
    'name': 'Ever told you had coronary heart disease',
    'table': 'MCQ',
    'field': 'MCQ160C',
    'canonical': 'chd',
    'kind': 'binary',
    'codes': YES_NO_CODES,
    'description': 'Primary outcome',
}

GOUT = {
    'name': 'Doctor ever told you that you had gout',
    'table': 'MCQ',
    'field': 'MCQ160N',
    'canonical': 'gout',
    'kind': 'binary',
    'codes': YES_NO_CODES,
    'description': 'Primary exposure',
}

# ============================================================================
# DEMOGRAPHICS
# ============================================================================

AGE = {
    'name': 'Age in years at screening',
    'table': 'DEMO',
    'field': 'RIDAGEYR',
    'canonical': 'age',
    'kind': 'continuous',
    'description': 'Top-coded at 80 in the public-use file',
}

GENDER = {
    'name': 'Gender',
    'table': 'DEMO',
    'field': 'RIAGENDR',
    'canonical': 'gender',
    'kind': 'categorical',
    'codes': {
        1: 'Male',
        2: 'Female',
        'male': 'Male',
        'female': 'Female',
    },
    'levels': ('Male', 'Female'),
    'reference': 'Male',
}

RACE_ETHNICITY = {
    'name': 'Race/Hispanic origin',
    'table': 'DEMO',
    'field': 'RIDRETH1',
    'canonical': 'race',
    'kind': 'categorical',
    'codes': {
        1: 'Mexican American',
        2: 'Other Hispanic',
        3: 'Non-Hispanic White',
        4: 'Non-Hispanic Black',
        5: 'Other Race',
        'mexican american': 'Mexican American',
        'other hispanic': 'Other Hispanic',
        'non-hispanic white': 'Non-Hispanic White',
        'non-hispanic black': 'Non-Hispanic Black',
        'other race - including multi-racial': 'Other Race',
        'other race': 'Other Race',
    },
    'levels': (
        'Mexican American',
        'Other Hispanic',
        'Non-Hispanic White',
        'Non-Hispanic Black',
        'Other Race',
    ),
    'reference': 'Non-Hispanic White',
}

# ============================================================================
# CLINICAL COVARIATES
# ============================================================================

BODY_MASS_INDEX = {
    'name': 'Body Mass Index (kg/m**2)',
    'table': 'BMX',
    'field': 'BMXBMI',
    'canonical': 'bmi',
    'kind': 'continuous',
}

DIABETES = {
    'name': 'Doctor told you have diabetes',
    'table': 'DIQ',
    'field': 'DIQ010',
    'canonical': 'diabetes',
    'kind': 'binary',
    'codes': YES_NO_CODES,
    'description': 'Borderline (3) is treated as missing; also the secondary outcome',
}

SMOKING_EVER = {
    'name': 'Smoked at least 100 cigarettes in life',
    'table': 'SMQ',
    'field': 'SMQ020',
    'canonical': 'smoking',
    'kind': 'binary',
    'codes': YES_NO_CODES,
}

HYPERTENSION = {
    'name': 'Ever told you had high blood pressure',
    'table': 'BPQ',
    'field': 'BPQ020',
    'canonical': 'hypertension',
    'kind': 'binary',
    'codes': YES_NO_CODES,
}

# ============================================================================
# DERIVED GROUPINGS
# ============================================================================

AGE_GROUP = {
    'name': 'Age band',
    'source': 'age',
    'canonical': 'age_group',
    'kind': 'band',
    # Right-closed: (19, 39], (39, 59], (59, inf)
    'edges': (19.0, 39.0, 59.0, float('inf')),
    'levels': ('20-39', '40-59', '60+'),
    'reference': '20-39',
}

# ============================================================================
# REGISTRY
# ============================================================================

# Ordered as they appear in the derived table.
DERIVED_VARIABLES = (
    CORONARY_HEART_DISEASE,
    GOUT,
    AGE,
    GENDER,
    RACE_ETHNICITY,
    BODY_MASS_INDEX,
    DIABETES,
    SMOKING_EVER,
    HYPERTENSION,
)

BINARY_VARIABLES = tuple(v for v in DERIVED_VARIABLES if v['kind'] == 'binary')


def status_column(canonical: str) -> str:
    """Name of the labelled factor built from a binary status variable."""
    return f'{canonical}_status'


def source_fields_by_table() -> dict[str, list[str]]:
    """Return {table: [SEQN, field, ...]} for every table the analysis needs."""
    out: dict[str, list[str]] = {}
    for var in (SUBJECT_ID, *DERIVED_VARIABLES):
        fields = out.setdefault(var['table'], [SUBJECT_ID['field']])
        if var['field'] not in fields:
            fields.append(var['field'])
    return out
