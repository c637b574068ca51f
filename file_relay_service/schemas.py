from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

class FileRecordBase(BaseModel):
    id: str
    filename: str
    mimetype: Optional[str] = None

class FileRecordCreate(FileRecordBase):
    pass

class FileRecordInDB(FileRecordBase):
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

class SiteInfo(BaseModel):
    owner: str
    site: str

class UploadManifest(SiteInfo):
    uid: str
    download_url: str
    api_url: str
    expires_in_days: int

class FileMetadataResponse(FileRecordInDB, SiteInfo):
    download_url: str

class DashboardResponse(SiteInfo):
    files: List[FileRecordInDB]

class ErrorResponse(SiteInfo):
    error: str
