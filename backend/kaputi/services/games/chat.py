"""In-room text chat and quick reactions.

Chat is relayed, not stored: a message is pushed once on the room channel
as ``chat_message`` and is not part of the room snapshot.
"""

import secrets

from .errors import ValidationError

# Quick reactions offered by the table UI.
REACTIONS = ('👏', '🔥', '😂', '🤔', '💪', '❤️')


def clean_chat_text(text, max_length):
    if not isinstance(text, str) or not text.strip():
        raise ValidationError('BadRequest', 'Message text is required')
    return text.strip()[:max_length]


def check_reaction(emoji):
    if emoji not in REACTIONS:
        raise ValidationError('BadRequest', f'Unknown reaction {emoji!r}')
    return emoji


def chat_message(player, content, now, is_reaction=False):
    prefix = 'react' if is_reaction else 'chat'
    return {
        'id': f"{prefix}-{int(now * 1000)}-{secrets.token_hex(2)}",
        'player_id': player.id,
        'player_name': player.name,
        'content': content,
        'is_reaction': is_reaction,
        'timestamp': now,
    }
