from sqlalchemy import Index
from sqlalchemy.orm import DeclarativeBase
from sqlalchemy.schema import Column
from sqlalchemy.types import Integer, String


class Base(DeclarativeBase):
    pass


class CardRow(Base):
    __tablename__ = "cards"
    id = Column(String, primary_key=True)
    language = Column(String, nullable=False)
    category = Column(String, nullable=False)
    difficulty = Column(String, nullable=False)
    target = Column(String, nullable=False)
    normalized_target = Column(String, nullable=False)

    __table_args__ = (
        Index("idx_cards_lcd", "language", "category", "difficulty"),
        Index("idx_cards_lcd_norm", "language", "category", "difficulty", "normalized_target"),
    )


class ForbiddenRow(Base):
    __tablename__ = "card_forbidden"
    # Autoincrement key keeps insertion order of the forbidden list
    id = Column(Integer, primary_key=True, autoincrement=True)
    card_id = Column(String, nullable=False, index=True)
    word = Column(String, nullable=False)


class TrashRow(Base):
    __tablename__ = "trash_cards"
    id = Column(String, primary_key=True)
    language = Column(String, nullable=False)
    category = Column(String, nullable=False)
    difficulty = Column(String, nullable=False)
    target = Column(String, nullable=False)
    normalized_target = Column(String, nullable=False)
    deleted_at = Column(Integer, nullable=False, index=True)


class TrashForbiddenRow(Base):
    __tablename__ = "trash_card_forbidden"
    id = Column(Integer, primary_key=True, autoincrement=True)
    card_id = Column(String, nullable=False, index=True)
    word = Column(String, nullable=False)
