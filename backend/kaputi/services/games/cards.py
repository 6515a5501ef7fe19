"""Card/dictionary provider.

The session only needs three things from content management: resolve a card
id, decide whether a card may sit in a slot, and list the topics a player may
choose from. ``WordLibraryProvider`` is the built-in implementation backed by
a small starter vocabulary.
"""

from typing import Dict, Iterable, List, Optional

from .errors import ValidationError
from .state import Card


# Word types double as slot roles.
WORD_TYPES = (
    'particle', 'article', 'noun', 'pronoun', 'verb',
    'adjective', 'tense', 'demonstrative', 'locative',
)

_STARTER_WORDS = [
    # id, maori, english, type, topics
    ('ko', 'ko', 'it is (focus)', 'particle', ()),
    ('he', 'he', 'a / some', 'particle', ()),
    ('kei_te', 'kei te', 'present tense', 'tense', ()),
    ('i', 'i', 'past tense', 'tense', ()),
    ('ka', 'ka', 'future / sequence', 'tense', ()),
    ('te', 'te', 'the (singular)', 'article', ()),
    ('nga', 'ngā', 'the (plural)', 'article', ()),
    ('au', 'au', 'I / me', 'pronoun', ('people',)),
    ('koe', 'koe', 'you', 'pronoun', ('people',)),
    ('ia', 'ia', 'he / she', 'pronoun', ('people',)),
    ('ngeru', 'ngeru', 'cat', 'noun', ('animals',)),
    ('kuri', 'kurī', 'dog', 'noun', ('animals',)),
    ('manu', 'manu', 'bird', 'noun', ('animals',)),
    ('kai_n', 'kai', 'food', 'noun', ('kai',)),
    ('aporo', 'āporo', 'apple', 'noun', ('kai',)),
    ('whare', 'whare', 'house', 'noun', ('places',)),
    ('kura', 'kura', 'school', 'noun', ('places',)),
    ('tamaiti', 'tamaiti', 'child', 'noun', ('people',)),
    ('moe', 'moe', 'sleep', 'verb', ('actions', 'animals')),
    ('kai_v', 'kai', 'eat', 'verb', ('actions', 'kai')),
    ('oma', 'oma', 'run', 'verb', ('actions',)),
    ('haere', 'haere', 'go', 'verb', ('actions', 'places')),
    ('pai', 'pai', 'good', 'adjective', ('feelings',)),
    ('harikoa', 'harikoa', 'happy', 'adjective', ('feelings',)),
    ('nui', 'nui', 'big', 'adjective', ()),
    ('iti', 'iti', 'small', 'adjective', ()),
    ('tenei', 'tēnei', 'this (near me)', 'demonstrative', ()),
    ('tena', 'tēnā', 'that (near you)', 'demonstrative', ()),
    ('ki', 'ki', 'to / towards', 'locative', ('places',)),
    ('kei', 'kei', 'at (present)', 'locative', ('places',)),
]

_STARTER_TOPICS = [
    {'id': 'kai', 'name': 'Food', 'maori': 'Kai'},
    {'id': 'feelings', 'name': 'Feelings', 'maori': 'Ngā Kare-ā-Roto'},
    {'id': 'actions', 'name': 'Actions', 'maori': 'Ngā Mahi'},
    {'id': 'animals', 'name': 'Animals', 'maori': 'Ngā Kararehe'},
    {'id': 'people', 'name': 'People', 'maori': 'Ngā Tāngata'},
    {'id': 'places', 'name': 'Places', 'maori': 'Ngā Wāhi'},
]


class CardProvider:
    """Interface the session consumes. Subclass or duck-type it."""

    def get_card(self, card_id: str) -> Card:
        raise NotImplementedError

    def can_place(self, card: Card, role: Optional[str], slots: List[dict]) -> bool:
        raise NotImplementedError

    def topics(self) -> List[dict]:
        raise NotImplementedError


class WordLibraryProvider(CardProvider):

    def __init__(self, words: Optional[Iterable[Card]] = None, topics: Optional[List[dict]] = None):
        if words is None:
            words = [
                Card(id=wid, text=maori, english=english, word_type=wtype,
                     romanization=maori, audio_id=f"voc_{wid}", tags=tuple(topics_))
                for wid, maori, english, wtype, topics_ in _STARTER_WORDS
            ]
        self._cards: Dict[str, Card] = {c.id: c for c in words}
        self._topics = list(topics if topics is not None else _STARTER_TOPICS)

    def get_card(self, card_id):
        card = self._cards.get(card_id)
        if card is None:
            raise ValidationError('UnknownCard', f'Unknown card {card_id!r}')
        return card

    def can_place(self, card, role, slots):
        # An untyped slot takes any word; a typed slot takes its word type.
        if role is None:
            return True
        return card.word_type == role or role in card.tags

    def topics(self):
        return list(self._topics)
