from sqlalchemy import Column, DateTime, Integer, String, Uuid
from sqlalchemy.orm import declarative_base
from sqlalchemy.sql import func
import uuid_utils
import uuid


def generate_uuid7():
    """Generate UUIDv7 and convert to standard Python UUID"""
    uuid7_obj = uuid_utils.uuid7()
    return uuid.UUID(str(uuid7_obj))

Base = declarative_base()


class IndexInfo(Base):
    __tablename__ = 'index_info'

    id = Column(Integer, primary_key=True)
    target_name = Column(String(500), nullable=False)
    variant = Column(String(50), nullable=False)
    target_id = Column(Integer, nullable=False, default=0)
    created_at = Column(DateTime, default=func.now(), nullable=False)

    def __repr__(self):
        return f"<IndexInfo(target='{self.target_name}', variant='{self.variant}')>"


class DownloadedFile(Base):
    __tablename__ = 'downloaded_files'

    id = Column(Uuid(as_uuid=True), primary_key=True, default=generate_uuid7)
    identifier = Column(String(2000), unique=True, nullable=False, index=True)
    filename = Column(String(500), nullable=False)
    variant = Column(String(50), nullable=False)
    recorded_at = Column(DateTime, default=func.now(), nullable=False)

    def __repr__(self):
        return f"<DownloadedFile(identifier='{self.identifier}', filename='{self.filename}')>"
