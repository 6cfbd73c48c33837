"""
Reading provider API models.
"""
from enum import Enum
from typing import List, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, model_validator


class InsulinTypeEnum(str, Enum):
    BOLUS = "bolus"
    BASAL = "basal"


class GlucoseUnitEnum(str, Enum):
    MMOL_L = "mmol/L"
    MG_DL = "mg/dL"


class GlucoseReadingPayload(BaseModel):
    """
    Model for a single CGM sample.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    timestamp: str = Field(description="ISO-8601 sample time")
    value: float = Field(description="Glucose value in the batch unit")


class InsulinReadingPayload(BaseModel):
    """
    Model for a single insulin delivery event.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    timestamp: str = Field(description="ISO-8601 delivery time")
    dose: float = Field(ge=0, description="Dose in units")
    insulinType: InsulinTypeEnum = Field(description="Bolus or basal delivery")


class ReadingBatchPayload(BaseModel):
    """
    Model for one dataset of glucose and insulin readings.
    """
    model_config = ConfigDict(arbitrary_types_allowed=True)

    datasetId: Optional[str] = Field(default=None, description="Dataset ID")
    localTimezone: Optional[str] = Field(default=None, description="IANA timezone used for day grouping")
    glucoseUnit: GlucoseUnitEnum = Field(default=GlucoseUnitEnum.MMOL_L, description="Unit of glucose values")
    glucose: List[GlucoseReadingPayload] = Field(default_factory=list, description="CGM samples")
    insulin: List[InsulinReadingPayload] = Field(default_factory=list, description="Insulin deliveries")


class ThresholdsPayload(BaseModel):
    """
    Model for user glucose thresholds in mmol/L.
    """
    model_config = ConfigDict(populate_by_name=True)

    veryLow: float = Field(default=3.0, validation_alias=AliasChoices("veryLow", "very_low"))
    low: float = Field(default=3.9)
    high: float = Field(default=10.0)
    veryHigh: float = Field(default=13.9, validation_alias=AliasChoices("veryHigh", "very_high"))

    @model_validator(mode="after")
    def _check_ordering(self) -> "ThresholdsPayload":
        if self.veryLow <= 0:
            raise ValueError("Very low threshold must be greater than zero")
        if not (self.veryLow < self.low < self.high < self.veryHigh):
            raise ValueError("Thresholds must satisfy veryLow < low < high < veryHigh")
        return self


# Request models
class ReadingBatchRequest(BaseModel):
    """
    Request model for the reading batch API.
    """
    datasetId: str = Field(description="Dataset ID")
    startDate: Optional[str] = Field(default=None, description="Inclusive start date")
    endDate: Optional[str] = Field(default=None, description="Inclusive end date")
