import unicodedata
from enum import Enum
from typing import Iterable, Optional


class Outcome(str, Enum):
    EXACT = 'exact'
    CLOSE = 'close'
    INCORRECT = 'incorrect'


class ToleranceMode(str, Enum):
    STRICT = 'strict'
    NORMAL = 'normal'
    LENIENT = 'lenient'


# Max edit distance, as a fraction of the answer length, still counted as close.
CLOSE_THRESHOLDS = {
    ToleranceMode.STRICT: 0.0,
    ToleranceMode.NORMAL: 0.20,
    ToleranceMode.LENIENT: 0.34,
}


def normalize(text: str) -> str:
    """Case-fold, trim and strip diacritics so 'Çilek ' and 'cilek' compare equal."""
    decomposed = unicodedata.normalize('NFKD', text or '')
    folded = ''.join(c for c in decomposed if not unicodedata.combining(c)).casefold()
    return ' '.join(folded.split())


def edit_distance(a: str, b: str) -> int:
    if a == b:
        return 0
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def evaluate(
    guess: str,
    canonical_answers: Iterable[str],
    tolerance: ToleranceMode = ToleranceMode.NORMAL,
    threshold: Optional[float] = None,
) -> Outcome:
    """Classify a raw guess against a content item's accepted answers.

    ``threshold`` overrides the close-match ratio of the ``normal`` mode;
    ``strict`` never reports close matches.
    """
    normalized_guess = normalize(guess)
    if not normalized_guess:
        return Outcome.INCORRECT

    answers = [a for a in (normalize(x) for x in canonical_answers) if a]
    if normalized_guess in answers:
        return Outcome.EXACT

    tolerance = ToleranceMode(tolerance)
    limit = CLOSE_THRESHOLDS[tolerance]
    if threshold is not None and tolerance == ToleranceMode.NORMAL:
        limit = threshold
    if limit <= 0:
        return Outcome.INCORRECT

    for answer in answers:
        if edit_distance(normalized_guess, answer) / len(answer) <= limit:
            return Outcome.CLOSE
    return Outcome.INCORRECT
