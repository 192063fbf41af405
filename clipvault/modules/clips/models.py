from dataclasses import dataclass
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, BigInteger, Boolean, TIMESTAMP
from clipvault.core.base import Base, TimestampedMixin

@dataclass(frozen=True)
class StoreBlob:
    blob_id: str

@dataclass(frozen=True)
class LegacyPath:
    path: str

ContentRef = StoreBlob | LegacyPath

class AudioClip(Base, TimestampedMixin):
    title: Mapped[str] = mapped_column(String(200))
    filename: Mapped[str] = mapped_column(String(255))
    # exactly one of blob_id / file_path is set; file_path only for pre-store uploads
    blob_id: Mapped[str | None] = mapped_column(String(64), nullable=True, index=True)
    file_path: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    file_size: Mapped[int] = mapped_column(BigInteger)
    mime_type: Mapped[str] = mapped_column(String(128))
    sha256: Mapped[str | None] = mapped_column(String(64), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(255))
    access_count: Mapped[int] = mapped_column(Integer, default=0)
    last_accessed_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, index=True)

    @property
    def content_ref(self) -> ContentRef | None:
        if self.blob_id:
            return StoreBlob(self.blob_id)
        if self.file_path:
            return LegacyPath(self.file_path)
        return None
