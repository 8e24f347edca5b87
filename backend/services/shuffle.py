# backend/services/shuffle.py
import hashlib
import random
import secrets
from typing import Callable, List, Optional, Sequence, TypeVar, Union

T = TypeVar("T")

SEED_MAX = 2**31 - 1


def normalize_seed(raw: Union[str, int, None]) -> Optional[int]:
    """Turn a caller supplied seed into a non-negative int.

    Integer strings are used as-is; any other token is hashed so the same
    token always maps to the same seed.
    """
    if raw is None:
        return None
    if isinstance(raw, int):
        return abs(raw)
    raw = str(raw).strip()
    if not raw:
        return None
    try:
        return abs(int(raw))
    except ValueError:
        digest = hashlib.sha256(raw.encode("utf-8")).digest()
        return int.from_bytes(digest[:8], "big") & SEED_MAX


def random_seed() -> int:
    return secrets.randbelow(SEED_MAX)


def seeded_shuffle(items: Sequence[T], seed: int) -> List[T]:
    """Fisher-Yates permutation fully determined by `seed`; input is not modified."""
    shuffled = list(items)
    random.Random(seed).shuffle(shuffled)
    return shuffled


def _category_key(category: Optional[str]) -> Optional[str]:
    if category is None:
        return None
    return category.strip().lower() or None


def _fits(result: List[T], position: int, key: str, max_consecutive: int, category) -> bool:
    """Would inserting an item of `key` before `position` keep every run within the limit?"""
    left = 0
    p = position - 1
    while p >= 0 and _category_key(category(result[p])) == key:
        left += 1
        p -= 1
    right = 0
    p = position
    while p < len(result) and _category_key(category(result[p])) == key:
        right += 1
        p += 1
    return left + right + 1 <= max_consecutive


def _forward_pass(result: List[T], max_consecutive: int, category, start: int = 0) -> Optional[int]:
    """Swap-repair runs left to right from `start`; returns the index of a run that has no later fix."""
    run_key = None
    run_length = 0
    for i in range(len(result)):
        key = _category_key(category(result[i]))
        if i >= start and key is not None and key == run_key and run_length >= max_consecutive:
            swap = next(
                (j for j in range(i + 1, len(result)) if _category_key(category(result[j])) != run_key),
                None,
            )
            if swap is None:
                return i
            result[i], result[swap] = result[swap], result[i]
            key = _category_key(category(result[i]))

        if key is not None and key == run_key:
            run_length += 1
        else:
            run_key = key
            run_length = 1 if key is not None else 0
    return None


def balance_categories(items: Sequence[T], max_consecutive: int = 3,
                       category: Callable[[T], Optional[str]] = lambda item: item.category,
                       lead: Sequence[T] = ()) -> List[T]:
    """Reorder so no more than `max_consecutive` neighbours share a category.

    Left-to-right pass: whenever the item at position i would extend a run
    past the limit, the nearest later item of another category is swapped
    into position i. When only same-category items remain, each of them is
    moved back to the first earlier gap that can take it. Items are only
    moved, never dropped or duplicated. Uncategorised items never form a run.
    If no gap is left the input cannot be balanced and the rest stays as is.

    `lead` is output already emitted before `items`: runs continue across it
    but its items are never moved and are not part of the result.
    """
    start = len(lead)
    result = list(lead) + list(items)
    if max_consecutive < 1 or len(result) <= max_consecutive:
        return result[start:]

    for _ in range(len(result)):
        stuck = _forward_pass(result, max_consecutive, category, start)
        if stuck is None:
            break
        key = _category_key(category(result[stuck]))
        item = result.pop(stuck)
        gap = next((p for p in range(start, stuck + 1) if _fits(result, p, key, max_consecutive, category)), None)
        if gap is None:
            result.insert(stuck, item)
            break
        result.insert(gap, item)
    return result[start:]
