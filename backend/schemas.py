from pydantic import BaseModel, Field
from typing import Optional


# Request Schemas
#
# camelCase on the wire. Every field is optional here; required values are
# checked by the services, which raise ValidationError.

class DownloadUrlRequest(BaseModel):
    """Body of POST /api/download-url"""
    url: Optional[str] = None


class TrimRequest(BaseModel):
    """Body of POST /api/trim"""
    filename: Optional[str] = None
    start_time: Optional[float] = Field(None, alias="startTime")
    duration: Optional[float] = None
    is_audio: bool = Field(False, alias="isAudio")
    task_id: Optional[str] = Field(None, alias="taskId")

    class Config:
        populate_by_name = True


class ExtractFramesRequest(BaseModel):
    """Body of POST /api/extract-frames"""
    filename: Optional[str] = None
    mode: Optional[str] = None
    interval: Optional[float] = None
    count: Optional[int] = None
    duration: Optional[float] = None
    task_id: Optional[str] = Field(None, alias="taskId")

    class Config:
        populate_by_name = True

