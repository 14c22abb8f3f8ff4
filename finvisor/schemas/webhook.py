from typing import List, Literal, Optional

from pydantic import BaseModel, EmailStr, Field


class ExportRequest(BaseModel):
    receipt_ids: List[int] = []
    format: Literal["sheet", "pdf", "csv"] = "sheet"


class ExportResult(BaseModel):
    sheet_url: Optional[str] = None
    download_url: Optional[str] = None
    pdf: Optional[bytes] = Field(default=None, exclude=True)
    filename: Optional[str] = None


class ReminderRequest(BaseModel):
    email: EmailStr
    message: str = Field("", max_length=2000)
