"""Sentence-in-progress for the active turn.

Slots fill strictly left to right and empty right to left, so the filled
slots are always a prefix and any empty slots are a suffix.
"""

from dataclasses import dataclass
from typing import List, Optional

from .errors import ValidationError
from .state import Card


@dataclass
class Slot:
    index: int
    role: Optional[str] = None
    card: Optional[Card] = None

    def to_dict(self):
        return {
            'index': self.index,
            'role': self.role,
            'card': self.card.to_dict() if self.card else None,
        }


class SentenceBuilder:

    def __init__(self, card_provider, max_length: int = 8):
        self._cards = card_provider
        self.max_length = max_length
        self.slots: List[Slot] = []

    @property
    def filled_count(self):
        return sum(1 for s in self.slots if s.card is not None)

    @property
    def is_complete(self):
        return all(s.card is not None for s in self.slots)

    def _next_open_index(self):
        for s in self.slots:
            if s.card is None:
                return s.index
        return None

    def create_slot(self, role=None) -> Slot:
        if len(self.slots) >= self.max_length:
            raise ValidationError('SentenceFull', f'Sentence is limited to {self.max_length} slots')
        slot = Slot(index=len(self.slots), role=role)
        self.slots.append(slot)
        return slot

    def play_card(self, slot_index: int, card: Card) -> Slot:
        if not isinstance(slot_index, int) or not 0 <= slot_index < len(self.slots):
            raise ValidationError('NoSuchSlot', f'No slot at index {slot_index!r}')
        slot = self.slots[slot_index]
        if slot.card is not None:
            raise ValidationError('SlotOccupied', f'Slot {slot_index} already holds a card')
        if slot_index != self._next_open_index():
            raise ValidationError('InvalidSlotOrder', 'Cards must fill slots from left to right')
        if not self._cards.can_place(card, slot.role, [s.to_dict() for s in self.slots]):
            raise ValidationError('IllegalPlacement', f'{card.text!r} cannot go in a {slot.role} slot')
        slot.card = card
        return slot

    def undo_last_card(self) -> Card:
        """Take back the last card together with its slot."""
        if not self.slots or self.filled_count == 0:
            raise ValidationError('NothingToUndo', 'No card to take back')
        if self.slots[-1].card is None:
            raise ValidationError('InvalidSlotOrder', 'Only the last slot can be emptied')
        return self.slots.pop().card

    def trim_empty(self):
        """Drop trailing unfilled slots."""
        while self.slots and self.slots[-1].card is None:
            self.slots.pop()

    def words(self):
        return [s.card.text for s in self.slots if s.card is not None]

    def to_dict(self):
        return {
            'slots': [s.to_dict() for s in self.slots],
            'filled': self.filled_count,
            'complete': self.is_complete,
            'max_length': self.max_length,
            'text': ' '.join(self.words()),
        }
