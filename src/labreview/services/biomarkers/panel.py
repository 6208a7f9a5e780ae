from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel

from labreview.domain.models.analysis import Analysis
from labreview.domain.models.biomarker import (
    BiomarkerClass,
    BiomarkerClassification,
    ClassificationCounts,
)
from labreview.domain.models.profiles import PatientProfile
from labreview.domain.models.report import Report
from labreview.errors import RecordNotFoundError
from labreview.infra.db.repositories import Repositories


class CategoryFilter(str, Enum):
    ALL = "all"
    METABOLIC = "metabolic"
    LIPID = "lipid"
    THYROID = "thyroid"
    NUTRITIONAL = "nutritional"
    HEPATIC = "hepatic"
    RENAL = "renal"


# Example panel shown until biomarkers are extracted from the uploaded PDF.
# Classifications are part of the data, not computed from the ranges.
EXAMPLE_BIOMARKERS: List[Dict[str, Any]] = [
    {
        "biomarker": "Fasting glucose",
        "value": 95,
        "units": "mg/dL",
        "classification": "SUBOPTIMAL",
        "risk_level": "medium",
        "position": "above_optimal",
        "message": "Suboptimal value. Needs optimization to reach the functional optimal range (75-86 mg/dL)",
        "ranges": {
            "optimal": {"min": 75, "max": 86},
            "acceptable": {"min": 70, "max": 99},
            "conventional": {"min": 65, "max": 99},
        },
        "interpretation": "Optimal: 75-86 mg/dL for metabolic prevention",
        "description": "Key marker of glucose metabolism and diabetes risk",
        "category": "metabolic",
    },
    {
        "biomarker": "Fasting insulin",
        "value": 4,
        "units": "μIU/mL",
        "classification": "OPTIMAL",
        "risk_level": "low",
        "position": "normal",
        "message": "Optimal value by functional medicine standards (2-5 μIU/mL)",
        "ranges": {
            "optimal": {"min": 2, "max": 5},
            "acceptable": {"min": 2, "max": 6},
            "conventional": {"min": 2, "max": 19},
        },
        "interpretation": "Optimal: 2-5 μIU/mL indicates optimal insulin sensitivity",
        "description": "Early marker of insulin resistance",
        "category": "metabolic",
    },
    {
        "biomarker": "Total cholesterol",
        "value": 190,
        "units": "mg/dL",
        "classification": "ACCEPTABLE",
        "risk_level": "low",
        "position": "above_optimal",
        "message": "Acceptable value but outside the optimal range. Optimal range: 120-180 mg/dL",
        "ranges": {
            "optimal": {"min": 120, "max": 180},
            "acceptable": {"min": 120, "max": 200},
            "conventional": {"min": 0, "max": 200},
        },
        "interpretation": "Optimal: <180 mg/dL for cardiovascular prevention",
        "description": "Cardiovascular risk marker",
        "category": "lipid",
    },
    {
        "biomarker": "LDL cholesterol",
        "value": 65,
        "units": "mg/dL",
        "classification": "OPTIMAL",
        "risk_level": "low",
        "position": "normal",
        "message": "Optimal value by functional medicine standards (40-70 mg/dL)",
        "ranges": {
            "optimal": {"min": 40, "max": 70},
            "acceptable": {"min": 40, "max": 100},
            "conventional": {"min": 0, "max": 100},
        },
        "interpretation": "Optimal: <70 mg/dL, <55 mg/dL for high risk",
        "description": "Bad cholesterol, the main cardiovascular predictor",
        "category": "lipid",
    },
    {
        "biomarker": "TSH",
        "value": 3.2,
        "units": "mIU/L",
        "classification": "SUBOPTIMAL",
        "risk_level": "medium",
        "position": "above_optimal",
        "message": "Suboptimal value. Needs optimization to reach the functional optimal range (0.5-2.0 mIU/L)",
        "ranges": {
            "optimal": {"min": 0.5, "max": 2.0},
            "acceptable": {"min": 0.5, "max": 2.5},
            "conventional": {"min": 0.4, "max": 4.0},
        },
        "interpretation": "Optimal: 0.5-2.0 mIU/L, therapeutic target 1.0-2.0",
        "description": "Main regulator of thyroid function",
        "category": "thyroid",
    },
    {
        "biomarker": "Vitamin D (25-OH)",
        "value": 28,
        "units": "ng/mL",
        "classification": "SUBOPTIMAL",
        "risk_level": "medium",
        "position": "below_optimal",
        "message": "Suboptimal value. Needs optimization to reach the functional optimal range (36-60 ng/mL)",
        "ranges": {
            "optimal": {"min": 36, "max": 60},
            "acceptable": {"min": 30, "max": 70},
            "conventional": {"min": 30, "max": 100},
        },
        "interpretation": "Optimal: 36-60 ng/mL, ideal 40-50 ng/mL",
        "description": "Stored vitamin D",
        "category": "nutritional",
    },
]


def example_panel() -> List[BiomarkerClassification]:
    return [BiomarkerClassification.model_validate(item) for item in EXAMPLE_BIOMARKERS]


def count_classifications(biomarkers: List[BiomarkerClassification]) -> ClassificationCounts:
    counts = ClassificationCounts(total=len(biomarkers))
    for item in biomarkers:
        if item.classification == BiomarkerClass.OPTIMAL:
            counts.optimal += 1
        elif item.classification == BiomarkerClass.ACCEPTABLE:
            counts.acceptable += 1
        elif item.classification == BiomarkerClass.SUBOPTIMAL:
            counts.suboptimal += 1
        elif item.classification == BiomarkerClass.ANOMALOUS:
            counts.anomalous += 1
        else:
            raise ValueError(f"Unhandled classification: {item.classification!r}")
    return counts


def filter_by_category(
    biomarkers: List[BiomarkerClassification], category: CategoryFilter
) -> List[BiomarkerClassification]:
    if category == CategoryFilter.ALL:
        return list(biomarkers)
    return [b for b in biomarkers if b.category is not None and b.category.value == category.value]


class FunctionalPanelView(BaseModel):
    analysis: Analysis
    report: Optional[Report] = None
    patient: Optional[PatientProfile] = None
    category: CategoryFilter
    biomarkers: List[BiomarkerClassification]
    # Always computed over the whole panel, regardless of the category filter.
    counts: ClassificationCounts


class FunctionalPanelService:
    def __init__(self, repositories: Repositories) -> None:
        self._repos = repositories

    def functional_panel(self, analysis_id: str, category: CategoryFilter = CategoryFilter.ALL) -> FunctionalPanelView:
        analysis = self._repos.analyses.get(analysis_id)
        if analysis is None:
            raise RecordNotFoundError("Analysis not found")
        panel = example_panel()
        return FunctionalPanelView(
            analysis=analysis,
            report=self._repos.reports.get_by_analysis(analysis.id),
            patient=self._repos.patients.get(analysis.patient_id),
            category=category,
            biomarkers=filter_by_category(panel, category),
            counts=count_classifications(panel),
        )
