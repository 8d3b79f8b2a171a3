from sqlalchemy import BigInteger
from sqlalchemy.orm import DeclarativeBase, Mapped, declared_attr, mapped_column


class Base(DeclarativeBase):
    pass


class EpochMillisMixin:
    @declared_attr
    def created_at(cls) -> Mapped[int]:
        return mapped_column(BigInteger, nullable=False, index=True)

    @declared_attr
    def updated_at(cls) -> Mapped[int]:
        return mapped_column(BigInteger, nullable=False)
