from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel

from labreview.domain.models.report import RiskLevel


class BiomarkerClass(str, Enum):
    OPTIMAL = "OPTIMAL"
    ACCEPTABLE = "ACCEPTABLE"
    SUBOPTIMAL = "SUBOPTIMAL"
    ANOMALOUS = "ANOMALOUS"


class BiomarkerPosition(str, Enum):
    NORMAL = "normal"
    BELOW_OPTIMAL = "below_optimal"
    ABOVE_OPTIMAL = "above_optimal"


class BiomarkerCategory(str, Enum):
    METABOLIC = "metabolic"
    LIPID = "lipid"
    THYROID = "thyroid"
    NUTRITIONAL = "nutritional"
    HEPATIC = "hepatic"
    RENAL = "renal"


class ValueRange(BaseModel):
    min: float
    max: float


class BiomarkerRanges(BaseModel):
    optimal: ValueRange
    acceptable: ValueRange
    conventional: ValueRange


class BiomarkerClassification(BaseModel):
    """A single lab value categorized against functional reference ranges.

    Display-only: the classification is supplied with the data, never
    recomputed from the ranges.
    """

    biomarker: str
    value: float
    units: str
    classification: BiomarkerClass
    risk_level: RiskLevel
    position: BiomarkerPosition
    message: str
    ranges: BiomarkerRanges
    interpretation: Optional[str] = None
    description: Optional[str] = None
    category: Optional[BiomarkerCategory] = None


class ClassificationCounts(BaseModel):
    optimal: int = 0
    acceptable: int = 0
    suboptimal: int = 0
    anomalous: int = 0
    total: int = 0
