"""Availability block service - periods in which the professional does not take bookings"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...errors import NotFoundError
from ...models import AvailabilityBlock, Professional
from .repository import AvailabilityBlockRepository
from .schemas import AvailabilityBlockCreate
from .time_calculator import expand_block_days, parse_clock_time

logger = logging.getLogger(__name__)


class AvailabilityBlockService:
    def __init__(self, db: Session):
        self.db = db
        self.repo = AvailabilityBlockRepository()

    def list_blocks(
        self,
        professional: Professional,
        starts_from: Optional[datetime] = None,
        starts_to: Optional[datetime] = None,
    ) -> list[AvailabilityBlock]:
        return self.repo.list_blocks(self.db, professional.id, starts_from, starts_to)

    def create_blocks(self, professional: Professional, data: AvailabilityBlockCreate) -> list[AvailabilityBlock]:
        """Create one block per selected day, in the professional's timezone"""
        ranges = expand_block_days(
            data.fromDate,
            data.toDate,
            parse_clock_time(data.startTime),
            parse_clock_time(data.endTime),
            data.weekdays,
            professional.timezone,
        )
        reason = (data.reason or "").strip() or None

        blocks = self.repo.create_blocks(self.db, professional.id, ranges, reason)
        logger.info(f"✅ Created {len(blocks)} availability block(s) for professional {professional.id}")
        return blocks

    def delete_block(self, professional: Professional, block_id: str) -> None:
        block = self.repo.get_block(self.db, professional.id, block_id)
        if not block:
            raise NotFoundError("Bloqueio de agenda não encontrado")
        self.repo.delete_block(self.db, block)
        logger.info(f"🗑️ Availability block {block_id} removed")
