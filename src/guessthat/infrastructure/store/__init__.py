from .card_store import CardStore, generate_card_id
from .trash import TrashManager

__all__ = ["CardStore", "TrashManager", "generate_card_id"]
