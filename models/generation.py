from pydantic import BaseModel
from typing import Any, Dict, Optional
from enum import Enum


class GenerationType(str, Enum):
    PDF = "pdf"
    PODCAST = "podcast"


class GenerationStatus(str, Enum):
    INITIALIZING = "initializing"
    EXTRACTING = "extracting"
    GENERATING = "generating"
    POLLING = "polling"
    DOWNLOADING = "downloading"
    COMPLETE = "complete"
    ERROR = "error"


class GenerationProgress(BaseModel):
    generationId: str
    type: GenerationType
    status: GenerationStatus
    progress: Optional[str] = None
    lessonId: Optional[str] = None
    error: Optional[str] = None
    metadata: Optional[Dict[str, Any]] = None

    def to_message(self) -> Dict[str, Any]:
        """Wire form; the event kind overrides the job type under "type" and the job type moves to "generationType"."""
        payload = self.model_dump(mode="json", exclude_none=True)
        payload["generationType"] = payload.pop("type")
        payload["type"] = "generation-progress"
        return payload
