"""
Pydantic models for AOI Relay.

Shared data models across the application.
"""

from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Literal

from pydantic import BaseModel, ConfigDict, Field, StrictFloat, StrictInt


# =====================================================
# Pipeline Models
# =====================================================

class ImageCandidate(BaseModel):
    """Image discovered under ``<input_root>/<date>/<serial>/``."""
    model_config = ConfigDict(frozen=True)

    path: Path
    date: str
    serial: str

    @property
    def filename(self) -> str:
        return self.path.name

    @property
    def stem(self) -> str:
        return self.path.stem

    @property
    def result_name(self) -> str:
        """Name of the primary result document."""
        return f"{self.stem}_result.json"


class Category(str, Enum):
    """Routing destination for a prediction entry."""
    PASS = "PASS"
    FAIL = "FAIL"


class RoutingDecision(BaseModel):
    """Where a single prediction entry goes."""
    index: int
    score: float
    category: Category
    raw: Dict[str, Any]
    source: str  # entry text exactly as received


# =====================================================
# Classification Request Models
# =====================================================

class InputMeta(BaseModel):
    """Fixed station metadata."""
    vendor_name: str
    aoi_hardware_version: str
    aoi_hardware_config: str
    aoi_software_version: str
    aoi_software_config: str


class FileMeta(BaseModel):
    """Metadata of the embedded image."""
    filename: str
    filetype: str
    timestamp: int


class InputData(BaseModel):
    """One base64 file entry."""
    type: Literal["file_base64"] = "file_base64"
    meta: FileMeta
    content: str


class ClassificationRequest(BaseModel):
    """Body of the classifier POST."""
    input_meta: InputMeta
    input_data: List[InputData]


# =====================================================
# Classification Response Models
# =====================================================

class PredictMeta(BaseModel):
    """Prediction metadata; only the score is interpreted."""
    model_config = ConfigDict(extra="allow")

    predicted_score: StrictFloat | StrictInt


class PredictResult(BaseModel):
    """A single prediction entry."""
    model_config = ConfigDict(extra="allow")

    meta: PredictMeta


class PredictResultData(BaseModel):
    """Prediction container."""
    model_config = ConfigDict(extra="allow")

    predict_results: List[PredictResult] = Field(min_length=1)


class ClassificationResponse(BaseModel):
    """Expected shape of a successful classifier answer."""
    model_config = ConfigDict(extra="allow")

    predict_result_data: PredictResultData
