from sqlalchemy import Column, String, DateTime, func
from sqlalchemy.orm import declarative_base

Base = declarative_base()

class FileRecord(Base):
    __tablename__ = "files_meta"

    id = Column(String(8), primary_key=True)
    filename = Column(String, nullable=False)
    mimetype = Column(String, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False, index=True)

    def __repr__(self):
        return f"<FileRecord(id={self.id}, name='{self.filename}', created_at={self.created_at})>"
