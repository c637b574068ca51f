from sqlalchemy import delete
from sqlalchemy.future import select
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

import models, schemas

async def get_file_record_by_id(db: AsyncSession, uid: str) -> Optional[models.FileRecord]:
    result = await db.execute(select(models.FileRecord).filter(models.FileRecord.id == uid))
    return result.scalars().first()

async def file_record_exists(db: AsyncSession, uid: str) -> bool:
    result = await db.execute(select(models.FileRecord.id).filter(models.FileRecord.id == uid))
    return result.first() is not None

async def create_file_record(db: AsyncSession, record_in: schemas.FileRecordCreate) -> models.FileRecord:
    db_record = models.FileRecord(
        id=record_in.id,
        filename=record_in.filename,
        mimetype=record_in.mimetype
    )
    db.add(db_record)
    try:
        await db.commit()
    except Exception:
        await db.rollback()
        raise
    return db_record

async def list_file_records(db: AsyncSession) -> List[models.FileRecord]:
    result = await db.execute(select(models.FileRecord).order_by(models.FileRecord.created_at.desc()))
    return result.scalars().all()

async def list_sweep_candidates(db: AsyncSession):
    result = await db.execute(
        select(models.FileRecord.id, models.FileRecord.filename, models.FileRecord.created_at)
    )
    return result.all()

async def delete_file_record(db: AsyncSession, uid: str) -> int:
    result = await db.execute(delete(models.FileRecord).where(models.FileRecord.id == uid))
    await db.commit()
    return result.rowcount
