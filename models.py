from sqlalchemy import CheckConstraint, Column, DateTime, Index, String, Text, Uuid
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
import uuid_utils
import uuid


def generate_uuid7():
    """Generate UUIDv7 and convert to standard Python UUID"""
    uuid7_obj = uuid_utils.uuid7()
    return uuid.UUID(str(uuid7_obj))


Base = declarative_base()


class Media(Base):
    __tablename__ = 'media'

    id = Column(Uuid(as_uuid=True), primary_key=True, default=generate_uuid7)
    source_url = Column(Text, nullable=False, index=True)
    media_url = Column(Text, nullable=False)
    media_type = Column(String(10), nullable=False, index=True)
    file_name = Column(String(255))
    alt_text = Column(Text)
    created_at = Column(DateTime, default=func.now(), nullable=False)

    __table_args__ = (
        CheckConstraint("media_type IN ('image', 'video')", name='ck_media_media_type'),
        Index('ix_media_created_at', created_at.desc()),
    )

    def __repr__(self):
        return f"<Media(id={self.id}, type='{self.media_type}', url='{self.media_url}')>"


class ScrapeFailure(Base):
    __tablename__ = 'scrape_failures'

    id = Column(Uuid(as_uuid=True), primary_key=True, default=generate_uuid7)
    source_url = Column(Text, nullable=False, index=True)
    error_kind = Column(String(32), nullable=False)
    error_message = Column(Text, nullable=False)
    created_at = Column(DateTime, default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<ScrapeFailure(id={self.id}, kind='{self.error_kind}', source='{self.source_url}')>"
