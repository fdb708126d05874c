from datetime import datetime
from uuid import UUID

from rentguard.schemas.common import CamelModel


class UploadedDocument(CamelModel):
    id: UUID
    category: str
    original_name: str
    file_size: int
    created_at: datetime | None = None


class DocumentUploadResponse(CamelModel):
    success: bool = True
    document: UploadedDocument
