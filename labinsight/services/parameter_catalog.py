"""Static clinical parameter catalog.

One entry per canonical parameter name: category, unit, the medically
plausible range used to reject bad extractions, the cut-points used for
status, the reference range string shown to users, and the name/unit
expressions the regex-based generators are built from. Constructed once at
import time; nothing mutates it afterwards.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Pattern, Tuple

CATEGORIES = (
    "Cardiovascular",
    "Metabolic",
    "Liver Function",
    "Kidney Function",
    "Hormonal",
    "Nutritional",
    "Inflammatory",
    "Hematology",
    "General",
)

DEFAULT_CATEGORY = "General"
DEFAULT_REFERENCE_RANGE = "Check with healthcare provider"

NUMBER = r"(\d+(?:\.\d+)?)"
# Reference-range field following a result: "<200", "≥ 40", "7-56", "0.7 – 1.3"
RANGE_FIELD = r"(?:[<>≤≥]=?\s*\d+(?:\.\d+)?|\d+(?:\.\d+)?\s*[-–]\s*\d+(?:\.\d+)?)"

_MG_DL = r"mg\s*/\s*dl\b"
_MG_L = r"mg\s*/\s*l\b"
_U_L = r"(?:iu|u)\s*/\s*l\b"
_MMHG = r"mm\s*hg\b"
_PERCENT = r"%"
_NG_ML = r"ng\s*/\s*ml\b"
_G_DL = r"g\s*/\s*dl\b"
_CELLS = r"(?:x\s*)?(?:10\s*\^?\s*[39]|k)\s*/\s*(?:u|µ|mc)?l\b|/\s*(?:u|µ|mc)l\b|/\s*cmm\b"
_MIU_L = r"(?:m|µ|u)?iu\s*/\s*m?l\b"


@dataclass(frozen=True)
class ParameterSpec:
    name: str
    category: str
    unit: str
    plausible: Tuple[float, float]
    reference_range: str
    name_pattern: str
    unit_pattern: str
    normal_low: Optional[float] = None
    normal_high: Optional[float] = None
    female_normal_low: Optional[float] = None
    aliases: Tuple[str, ...] = ()
    fuzzy_terms: Tuple[str, ...] = ()
    # Phrases containing a fuzzy term that name another parameter
    fuzzy_exclude: str = ""
    unit_required_names: str = ""
    patterns: List[Pattern] = field(default_factory=list, compare=False, repr=False)
    table_patterns: List[Pattern] = field(default_factory=list, compare=False, repr=False)

    def in_range(self, value: float) -> bool:
        lo, hi = self.plausible
        return lo <= value <= hi

    def low_cutoff(self, sex: Optional[str] = None) -> Optional[float]:
        if self.female_normal_low is not None and (sex or "").strip().lower() in ("f", "female", "woman"):
            return self.female_normal_low
        return self.normal_low

    @property
    def has_cutoffs(self) -> bool:
        return self.normal_low is not None or self.normal_high is not None


def _compile(expr: str) -> Pattern:
    return re.compile(expr, re.IGNORECASE)


def _plain_patterns(spec: ParameterSpec) -> List[Pattern]:
    """Ordered expressions for free-text reports: strict, loose, bare.

    Names in ``unit_required_names`` are too generic to trust without a unit,
    so they only get the strict form, tried last.
    """
    name, unit = spec.name_pattern, spec.unit_pattern
    exprs = [
        rf"(?:{name})\s*(?:\([^)\n]{{0,30}}\))?\s*[:=\-]?\s*{NUMBER}\s*(?:{unit})",
        rf"(?:{name})[^\d\n]{{0,30}}?{NUMBER}\s*(?:{unit})",
        rf"(?:{name})\s*[:=\-]?\s*{NUMBER}(?![\d/.])",
    ]
    if spec.unit_required_names:
        exprs.append(rf"(?:{spec.unit_required_names})\s*[:=\-]?\s*{NUMBER}\s*(?:{unit})")
    return [_compile(e) for e in exprs]


def _table_patterns(spec: ParameterSpec) -> List[Pattern]:
    """Expressions anchored on a name, result, reference-range row.

    The captured group is the middle field so a reference bound is never
    taken for the result.
    """
    name, unit = spec.name_pattern, spec.unit_pattern
    exprs = [
        rf"(?:{name})[^\d\n]{{0,40}}?{NUMBER}\s*(?:{unit})?\s*(?:\(?\s*(?:h|l|high|low)\s*\)?\s*)?{RANGE_FIELD}",
        rf"(?:{name})[^\d\n]{{0,40}}?{NUMBER}\s*(?:{unit})",
    ]
    return [_compile(e) for e in exprs]


def _spec(**kwargs) -> ParameterSpec:
    spec = ParameterSpec(**kwargs)
    spec.patterns.extend(_plain_patterns(spec))
    spec.table_patterns.extend(_table_patterns(spec))
    return spec


_SPECS = [
    _spec(
        name="Total Cholesterol",
        category="Cardiovascular",
        unit="mg/dL",
        plausible=(100, 400),
        reference_range="<200 mg/dL",
        normal_high=200,
        name_pattern=r"total\s+cholesterol|cholesterol[,\s]+total",
        unit_required_names=(
            r"(?<!hdl\s)(?<!ldl\s)(?<!hdl-)(?<!ldl-)(?<!non-)\bcholesterol\b(?!\s*/)(?!\s*(?:hdl|ldl|ratio))"
        ),
        unit_pattern=_MG_DL,
        aliases=("cholesterol", "totalcholesterol", "cholesteroltotal", "tc", "serumcholesterol"),
        fuzzy_terms=("total cholesterol", "cholesterol total"),
    ),
    _spec(
        name="LDL Cholesterol",
        category="Cardiovascular",
        unit="mg/dL",
        plausible=(50, 300),
        reference_range="<100 mg/dL",
        normal_high=100,
        name_pattern=r"\bldl(?:[\s\-]*c\b|[\s\-]+cholesterol)?|low[\s\-]+density\s+lipoprotein|cholesterol[,\s]+ldl",
        unit_pattern=_MG_DL,
        aliases=("ldl", "ldlc", "ldlcholesterol", "lowdensitylipoprotein", "cholesterolldl"),
        fuzzy_terms=("ldl", "low density lipoprotein"),
    ),
    _spec(
        name="HDL Cholesterol",
        category="Cardiovascular",
        unit="mg/dL",
        plausible=(20, 120),
        reference_range=">40 mg/dL (men), >50 mg/dL (women)",
        normal_low=40,
        female_normal_low=50,
        name_pattern=r"\bhdl(?:[\s\-]*c\b|[\s\-]+cholesterol)?|high[\s\-]+density\s+lipoprotein|cholesterol[,\s]+hdl",
        unit_pattern=_MG_DL,
        aliases=("hdl", "hdlc", "hdlcholesterol", "highdensitylipoprotein", "cholesterolhdl"),
        fuzzy_terms=("hdl", "high density lipoprotein"),
    ),
    _spec(
        name="Triglycerides",
        category="Cardiovascular",
        unit="mg/dL",
        plausible=(20, 1000),
        reference_range="<150 mg/dL",
        normal_high=150,
        name_pattern=r"\btriglycerides?\b|\btrigs?\b",
        unit_pattern=_MG_DL,
        aliases=("triglycerides", "triglyceride", "trig", "trigs", "tg"),
        fuzzy_terms=("triglycerides", "triglyceride"),
    ),
    _spec(
        name="Glucose",
        category="Metabolic",
        unit="mg/dL",
        plausible=(30, 600),
        reference_range="70-99 mg/dL (fasting)",
        normal_low=70,
        normal_high=99,
        name_pattern=r"fasting\s+(?:blood\s+|plasma\s+)?glucose|blood\s+(?:glucose|sugar)|\bglucose\b|\bfbs\b|\bfbg\b",
        unit_pattern=_MG_DL,
        aliases=("glucose", "fastingglucose", "bloodglucose", "bloodsugar", "fbs", "fbg", "fastingbloodsugar"),
        fuzzy_terms=("glucose", "blood sugar"),
    ),
    _spec(
        name="HbA1c",
        category="Metabolic",
        unit="%",
        plausible=(3.0, 20.0),
        reference_range="<5.7%",
        normal_high=5.7,
        name_pattern=r"\bhb\s*a1c|ha?emoglobin\s+a1c|glycated\s+ha?emoglobin|glycosylated\s+ha?emoglobin|\ba1c\b",
        unit_pattern=_PERCENT,
        aliases=("hba1c", "a1c", "hemoglobina1c", "haemoglobina1c", "glycatedhemoglobin", "glycosylatedhemoglobin"),
        fuzzy_terms=("hba1c", "a1c"),
    ),
    _spec(
        name="Systolic Blood Pressure",
        category="Cardiovascular",
        unit="mmHg",
        plausible=(70, 250),
        reference_range="<130 mmHg",
        normal_low=90,
        normal_high=129,
        name_pattern=r"\bsystolic(?:\s+(?:blood\s+)?pressure)?\b|\bsbp\b",
        unit_pattern=_MMHG,
        aliases=("systolic", "systolicbp", "systolicbloodpressure", "sbp", "systolicpressure"),
        fuzzy_terms=("systolic",),
    ),
    _spec(
        name="Diastolic Blood Pressure",
        category="Cardiovascular",
        unit="mmHg",
        plausible=(40, 150),
        reference_range="<80 mmHg",
        normal_low=60,
        normal_high=79,
        name_pattern=r"\bdiastolic(?:\s+(?:blood\s+)?pressure)?\b|\bdbp\b",
        unit_pattern=_MMHG,
        aliases=("diastolic", "diastolicbp", "diastolicbloodpressure", "dbp", "diastolicpressure"),
        fuzzy_terms=("diastolic",),
    ),
    _spec(
        name="CRP",
        category="Inflammatory",
        unit="mg/L",
        plausible=(0, 50),
        reference_range="<3.0 mg/L",
        normal_high=3.0,
        name_pattern=r"\bhs[\s\-]*crp\b|c[\s\-]*reactive\s+protein|\bcrp\b",
        unit_pattern=_MG_L,
        aliases=("crp", "hscrp", "creactiveprotein", "highsensitivitycrp"),
        fuzzy_terms=("crp", "c-reactive protein", "c reactive protein"),
    ),
    _spec(
        name="Vitamin D",
        category="Nutritional",
        unit="ng/mL",
        plausible=(0, 150),
        reference_range="30-100 ng/mL",
        normal_low=30,
        normal_high=100,
        name_pattern=(
            r"25[\s\-]*(?:\(oh\)|oh|hydroxy)[\s\-]*(?:vitamin\s*d[23]?|vit\.?\s*d[23]?|d[23]?)\b"
            r"|\bvitamin\s*d[23]?\b|\bvit\.?\s*d[23]?\b"
        ),
        unit_pattern=_NG_ML,
        aliases=("vitamind", "vitd", "vitamind3", "25ohvitamind", "25hydroxyvitamind", "25ohd"),
        fuzzy_terms=("vitamin d", "vit d"),
    ),
    _spec(
        name="ALT",
        category="Liver Function",
        unit="U/L",
        plausible=(1, 500),
        reference_range="7-55 U/L",
        normal_low=7,
        normal_high=55,
        name_pattern=r"\balt\b|\bsgpt\b|alanine\s+(?:amino)?transaminase",
        unit_pattern=_U_L,
        aliases=("alt", "sgpt", "alaninetransaminase", "alanineaminotransferase"),
        fuzzy_terms=("alt", "sgpt"),
    ),
    _spec(
        name="AST",
        category="Liver Function",
        unit="U/L",
        plausible=(1, 500),
        reference_range="8-48 U/L",
        normal_low=8,
        normal_high=48,
        name_pattern=r"\bast\b|\bsgot\b|aspartate\s+(?:amino)?transaminase",
        unit_pattern=_U_L,
        aliases=("ast", "sgot", "aspartatetransaminase", "aspartateaminotransferase"),
        fuzzy_terms=("ast", "sgot"),
    ),
    _spec(
        name="Creatinine",
        category="Kidney Function",
        unit="mg/dL",
        plausible=(0.3, 5.0),
        reference_range="0.7-1.3 mg/dL",
        normal_low=0.7,
        normal_high=1.3,
        name_pattern=r"\b(?:serum\s+)?creatinine\b|\bcreat\b",
        unit_pattern=_MG_DL,
        aliases=("creatinine", "creat", "serumcreatinine"),
        fuzzy_terms=("creatinine",),
    ),
    _spec(
        name="Hemoglobin",
        category="Hematology",
        unit="g/dL",
        plausible=(3, 25),
        reference_range="12.0-17.5 g/dL",
        normal_low=12.0,
        normal_high=17.5,
        name_pattern=(
            r"(?<!glycated\s)(?<!glycosylated\s)\bha?emoglobin\b(?!\s*a1c)"
            r"|\bhgb\b|(?<!glycated\s)(?<!glycosylated\s)\bhb\b(?!\s*a1c)"
        ),
        unit_pattern=_G_DL,
        aliases=("hemoglobin", "haemoglobin", "hgb", "hb"),
        fuzzy_terms=("hemoglobin", "hgb"),
        fuzzy_exclude=r"(?:glycated|glycosylated)\s+(?:ha?emoglobin|hb)\b|(?:ha?emoglobin|hb)\s*a1c",
    ),
    _spec(
        name="WBC",
        category="Hematology",
        unit="x10^3/uL",
        plausible=(0.5, 100),
        reference_range="4.0-11.0 x10^3/uL",
        normal_low=4.0,
        normal_high=11.0,
        name_pattern=r"\bwbc\b|white\s+blood\s+cells?(?:\s+count)?|\bleukocytes?\b",
        unit_pattern=_CELLS,
        aliases=("wbc", "whitebloodcells", "whitebloodcell", "whitebloodcellcount", "leukocytes"),
        fuzzy_terms=("wbc", "white blood cells"),
    ),
    _spec(
        name="Platelets",
        category="Hematology",
        unit="x10^3/uL",
        plausible=(10, 1500),
        reference_range="150-450 x10^3/uL",
        normal_low=150,
        normal_high=450,
        name_pattern=r"\bplatelets?(?:\s+count)?\b|\bplt\b",
        unit_pattern=_CELLS,
        aliases=("platelets", "platelet", "plateletcount", "plt"),
        fuzzy_terms=("platelets", "platelet count"),
    ),
    _spec(
        name="TSH",
        category="Hormonal",
        unit="mIU/L",
        plausible=(0.01, 100),
        reference_range="0.4-4.0 mIU/L",
        normal_low=0.4,
        normal_high=4.0,
        name_pattern=r"\btsh\b|thyroid[\s\-]+stimulating\s+hormone",
        unit_pattern=_MIU_L,
        aliases=("tsh", "thyroidstimulatinghormone", "thyrotropin"),
        fuzzy_terms=("tsh", "thyroid stimulating hormone"),
    ),
]

CATALOG: Dict[str, ParameterSpec] = {spec.name: spec for spec in _SPECS}

# "Blood Pressure 120/80 mmHg" yields both systolic and diastolic
BP_PAIR_PATTERN = re.compile(
    r"(?:blood\s+pressure|\bb\.?p\b\.?)\s*[:=\-]?\s*(\d{2,3})\s*/\s*(\d{2,3})",
    re.IGNORECASE,
)
SYSTOLIC = "Systolic Blood Pressure"
DIASTOLIC = "Diastolic Blood Pressure"


def _normalize_name(name: str) -> str:
    return "".join(ch for ch in (name or "").lower() if ch.isalnum())


_NAME_ALIASES: Dict[str, str] = {}
for _spec_item in _SPECS:
    _NAME_ALIASES[_normalize_name(_spec_item.name)] = _spec_item.name
    for _alias in _spec_item.aliases:
        _NAME_ALIASES[_alias] = _spec_item.name
del _spec_item, _alias


def resolve_parameter_name(raw: str) -> Optional[str]:
    """Map a free-form parameter label ("LDL-C", "hemoglobin a1c") to its canonical name."""
    return _NAME_ALIASES.get(_normalize_name(raw))


def get_spec(name: str) -> Optional[ParameterSpec]:
    spec = CATALOG.get(name)
    if spec is None:
        canonical = resolve_parameter_name(name)
        spec = CATALOG.get(canonical) if canonical else None
    return spec


def category_for(name: str) -> str:
    spec = get_spec(name)
    return spec.category if spec else DEFAULT_CATEGORY


def reference_range_for(name: str) -> str:
    spec = get_spec(name)
    return spec.reference_range if spec else DEFAULT_REFERENCE_RANGE


def unit_for(name: str) -> str:
    spec = get_spec(name)
    return spec.unit if spec else ""
