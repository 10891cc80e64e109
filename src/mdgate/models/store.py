from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel


class StoredObject(BaseModel):
    """An object read back from the object store."""

    key: str
    body: bytes
    content_type: str
    metadata: dict[str, str] = {}
    uploaded_at: datetime

    def text(self) -> str:
        return self.body.decode("utf-8", errors="replace")
