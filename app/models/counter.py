from sqlalchemy import Column, String, BigInteger
from app.db.session import Base

class Counter(Base):
    """Named monotonic sequence, e.g. numeric gateway order codes."""

    __tablename__ = "counters"

    name = Column(String(50), primary_key=True)
    seq = Column(BigInteger, nullable=False, default=0)
