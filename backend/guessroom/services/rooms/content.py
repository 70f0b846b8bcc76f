from __future__ import annotations

import json
import random
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Protocol, Tuple


@dataclass(frozen=True)
class ContentRef:
    id: str
    answers: Tuple[str, ...]
    prompt: str = ''
    image_url: str = ''
    category: str = ''

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ContentRef':
        answers = data.get('answers') or []
        if isinstance(answers, str):
            answers = [answers]
        return cls(
            id=str(data['id']),
            answers=tuple(str(a) for a in answers),
            prompt=str(data.get('prompt', '')),
            image_url=str(data.get('image_url', '')),
            category=str(data.get('category', '')),
        )

    def public_dict(self) -> Dict[str, Any]:
        # Answers stay server-side until the round resolves.
        return {
            'id': self.id,
            'prompt': self.prompt,
            'image_url': self.image_url,
            'category': self.category,
        }

    def to_dict(self) -> Dict[str, Any]:
        d = self.public_dict()
        d['answers'] = list(self.answers)
        return d


class ContentProvider(Protocol):
    def get_content_sequence(self, settings: Any) -> List[ContentRef]:
        ...


DEFAULT_CATALOGUE: List[Dict[str, Any]] = [
    {'id': 'car-ferrari', 'category': 'cars', 'prompt': 'Which car is this?', 'answers': ['Ferrari', 'Ferrari 458']},
    {'id': 'car-beetle', 'category': 'cars', 'prompt': 'Which car is this?', 'answers': ['Volkswagen Beetle', 'Beetle', 'VW Beetle']},
    {'id': 'car-mustang', 'category': 'cars', 'prompt': 'Which car is this?', 'answers': ['Ford Mustang', 'Mustang']},
    {'id': 'place-eiffel', 'category': 'landmarks', 'prompt': 'Where is this?', 'answers': ['Eiffel Tower', 'Tour Eiffel']},
    {'id': 'place-galata', 'category': 'landmarks', 'prompt': 'Where is this?', 'answers': ['Galata Tower', 'Galata Kulesi']},
    {'id': 'place-colosseum', 'category': 'landmarks', 'prompt': 'Where is this?', 'answers': ['Colosseum', 'Colosseo']},
    {'id': 'fruit-strawberry', 'category': 'food', 'prompt': 'What is pictured?', 'answers': ['Strawberry', 'Çilek']},
    {'id': 'animal-bee', 'category': 'animals', 'prompt': 'What is pictured?', 'answers': ['Bee', 'Honeybee', 'Arı']},
]


class StaticContentProvider:
    """Serves content refs from an in-memory catalogue.

    The catalogue comes from ``DEFAULT_CATALOGUE`` or a JSON file holding a
    list of ``{"id", "answers", "prompt", "image_url", "category"}`` objects.
    """

    def __init__(self, items: Optional[Iterable[ContentRef]] = None, shuffle: bool = False, seed: Optional[int] = None):
        if items is None:
            items = [ContentRef.from_dict(d) for d in DEFAULT_CATALOGUE]
        self._items = list(items)
        self._shuffle = shuffle
        self._random = random.Random(seed)

    @classmethod
    def from_json(cls, path: str, **kwargs) -> 'StaticContentProvider':
        raw = json.loads(Path(path).read_text(encoding='utf-8'))
        return cls([ContentRef.from_dict(d) for d in raw], **kwargs)

    def get_content_sequence(self, settings: Any) -> List[ContentRef]:
        items = list(self._items)
        if self._shuffle:
            self._random.shuffle(items)
        count = int(getattr(settings, 'rounds', 0) or len(items))
        return items[:count]
