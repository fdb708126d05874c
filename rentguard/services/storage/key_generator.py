from pathlib import Path
from uuid import UUID
import re


class KeyGenerator:
    @staticmethod
    def _safe_filename(filename: str) -> str:
        name = Path(filename).name or "upload.bin"
        return re.sub(r"[^a-zA-Z0-9_.-]", "_", name)

    @staticmethod
    def policy_document_key(
        policy_id: UUID, actor_id: UUID, category: str, document_id: UUID, filename: str
    ) -> str:
        safe_filename = KeyGenerator._safe_filename(filename)
        return f"policies/{policy_id}/actors/{actor_id}/{category}/{document_id}/{safe_filename}"
