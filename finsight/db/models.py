from sqlalchemy import Column, String, DateTime, Float, Integer
from datetime import datetime

from finsight.db.database import Base


class BaseAuditableEntity(Base):
    __abstract__ = True

    CreatedOn = Column(DateTime, nullable=False, default=datetime.utcnow)
    LastModifiedOn = Column(DateTime, nullable=True, onupdate=datetime.utcnow)


class MerchantMemory(BaseAuditableEntity):
    __tablename__ = "MerchantMemories"

    MerchantKey = Column(String(255), primary_key=True)
    Merchant = Column(String(255), nullable=False)
    Category = Column(String(50), nullable=False)
    Confidence = Column(Float, nullable=False)
    Frequency = Column(Integer, nullable=False, default=1)
