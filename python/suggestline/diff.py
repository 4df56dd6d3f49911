from typing import List, Optional, Sequence

import structlog

from suggestline.config import DEFAULT_SETTINGS, ReconcileSettings
from suggestline.markup import normalize
from suggestline.models import DiffKind, DiffToken

logger = structlog.get_logger(__name__)


def word_diff(
    original: Optional[str],
    suggested: Optional[str],
    settings: ReconcileSettings = DEFAULT_SETTINGS,
) -> List[DiffToken]:
    """
    Compares an original line with its suggested replacement and returns a
    token stream for redline rendering.

    Texts whose word sets overlap less than `settings.rewrite_threshold`
    come back as a full rewrite: one deleted block, one inserted block.
    Anything closer is aligned word by word with a bounded greedy walk.
    This is not a minimal edit script; it favours cheap, predictable output.
    """
    if not original and not suggested:
        return []

    clean_original = normalize(original)
    clean_suggested = normalize(suggested)

    if not original:
        return [DiffToken(kind=DiffKind.INSERTED, text=clean_suggested)]
    if not suggested:
        return [DiffToken(kind=DiffKind.DELETED, text=clean_original)]

    if clean_original.strip() == clean_suggested.strip():
        return [DiffToken(kind=DiffKind.UNCHANGED, text=clean_original)]

    orig_words = clean_original.split()
    sugg_words = clean_suggested.split()

    score = similarity(orig_words, sugg_words)
    if score < settings.rewrite_threshold:
        logger.debug("Full rewrite detected", similarity=round(score, 3))
        return [
            DiffToken(kind=DiffKind.DELETED, text=clean_original),
            DiffToken(kind=DiffKind.INSERTED, text=clean_suggested),
        ]

    return _align_words(orig_words, sugg_words, settings.lookahead)


def similarity(words1: Sequence[str], words2: Sequence[str]) -> float:
    """Jaccard index of the lowercased word sets (0.0 - 1.0)."""
    if not words1 and not words2:
        return 1.0
    if not words1 or not words2:
        return 0.0

    set1 = {w.lower() for w in words1}
    set2 = {w.lower() for w in words2}
    return len(set1 & set2) / len(set1 | set2)


def _align_words(orig_words: Sequence[str], sugg_words: Sequence[str], lookahead: int) -> List[DiffToken]:
    tokens: List[DiffToken] = []
    i = 0
    j = 0

    def emit(kind: DiffKind, text: str):
        tokens.append(DiffToken(kind=kind, text=text))

    while i < len(orig_words) or j < len(sugg_words):
        if i >= len(orig_words):
            emit(DiffKind.INSERTED, sugg_words[j])
            j += 1
            continue
        if j >= len(sugg_words):
            emit(DiffKind.DELETED, orig_words[i])
            i += 1
            continue

        if orig_words[i].lower() == sugg_words[j].lower():
            emit(DiffKind.UNCHANGED, orig_words[i])
            i += 1
            j += 1
            continue

        # Suggested word shows up a little further along the original:
        # the words in between were deleted.
        k = _find_ahead(orig_words, i, sugg_words[j], lookahead)
        if k != -1:
            for m in range(i, k):
                emit(DiffKind.DELETED, orig_words[m])
            emit(DiffKind.UNCHANGED, orig_words[k])
            i = k + 1
            j += 1
            continue

        # Original word shows up a little further along the suggestion:
        # the words in between were inserted.
        k = _find_ahead(sugg_words, j, orig_words[i], lookahead)
        if k != -1:
            for m in range(j, k):
                emit(DiffKind.INSERTED, sugg_words[m])
            emit(DiffKind.UNCHANGED, sugg_words[k])
            j = k + 1
            i += 1
            continue

        emit(DiffKind.DELETED, orig_words[i])
        emit(DiffKind.INSERTED, sugg_words[j])
        i += 1
        j += 1

    return tokens


def _find_ahead(words: Sequence[str], start: int, target: str, lookahead: int) -> int:
    """Index of `target` in words[start+1 : start+lookahead], or -1."""
    needle = target.lower()
    end = min(start + lookahead, len(words))
    for k in range(start + 1, end):
        if words[k].lower() == needle:
            return k
    return -1
