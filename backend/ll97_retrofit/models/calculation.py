from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import Column, String, DateTime
from sqlalchemy.dialects.postgresql import JSONB, UUID

from ll97_retrofit.database import Base


class CalculationRecord(Base):
    """One building calculation: inputs, options and the derived aggregate.

    ``compliance`` is NULL for records created before the LL97 engine ran;
    its presence is what marks a record as fully computed.
    """
    __tablename__ = "calculations"

    id = Column(UUID(as_uuid=True), primary_key=True, default=uuid.uuid4)
    bbl = Column(String(10), index=True, nullable=True)
    profile = Column(JSONB, nullable=False)
    options = Column(JSONB, nullable=False, default=dict)
    result = Column(JSONB, nullable=True)
    compliance = Column(JSONB, nullable=True)
    cache_key = Column(String(64), nullable=True, index=True)
    constants_version = Column(String(20), nullable=True)
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
