from typing import Any, Dict, List

from pydantic import BaseModel, ConfigDict, Field


class DetectionResult(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    detected_objects: List[Dict[str, Any]] = Field(default_factory=list, alias="detectedObjects")
    image_name: str = Field(alias="imageName")

    def to_response(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True)


class ErrorResponse(BaseModel):
    error: str
