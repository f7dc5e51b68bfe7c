import uuid
from sqlalchemy import Column, String, Boolean, Date, Integer, Text, Uuid
from app.db.session import Base

class Combo(Base):
    __tablename__ = "combos"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    combo_code = Column(String(20), unique=True, nullable=False, index=True) # COMBO-000001
    name = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    price = Column(Integer, nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=False)
    is_active = Column(Boolean, default=True)
    is_deleted = Column(Boolean, default=False)
