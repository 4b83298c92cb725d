from sqlalchemy import Column, Integer, Float, DateTime
from core.database import Base


class ExchangeRate(Base):
    """
    Cached USD-based FX quote. Created lazily on the first miss for an hour
    window and never updated afterwards.
    """
    __tablename__ = "exchange_rates"

    id = Column(Integer, primary_key=True, autoincrement=True)
    eur = Column(Float, nullable=False)  # USD -> EUR
    gbp = Column(Float, nullable=False)  # USD -> GBP
    date = Column(DateTime(timezone=True), nullable=False, index=True)
