import json
import re
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, List, Literal, Optional

CENT = Decimal("0.01")

_SLUG_RE = re.compile(r"^[a-z0-9-]+$")


def to_cents(amount) -> int:
    """Convert a Decimal, int, str or float amount of soles into integer cents (half-up)."""
    if isinstance(amount, float):
        amount = repr(amount)
    value = Decimal(amount).quantize(CENT, rounding=ROUND_HALF_UP)
    return int(value * 100)


def from_cents(cents: Optional[int]) -> Optional[Decimal]:
    if cents is None:
        return None
    return (Decimal(int(cents)) / 100).quantize(CENT)


def like_pattern(term: str) -> str:
    """``%term%`` with LIKE wildcards in ``term`` escaped; pair with ``ESCAPE '\\'``."""
    escaped = term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def now_ts() -> str:
    """Store clock for every ``created_at``/``updated_at``: local time, second precision."""
    return datetime.now().isoformat(sep=" ", timespec="seconds")


def money_to_float(amount: Optional[Decimal]) -> float:
    """Presentation-only conversion; never compare or accumulate the result."""
    return float(amount) if amount is not None else 0.0


def format_money(amount: Optional[Decimal]) -> str:
    return f"S/ {amount or Decimal('0.00'):.2f}"


def apply_percentage_discount(cents: int, percentage: int) -> int:
    if percentage <= 0:
        return cents
    value = Decimal(cents) * (100 - percentage) / 100
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def short_id(order_id: str) -> str:
    return order_id.split("-")[0].upper()


def is_valid_slug(slug: str) -> bool:
    return bool(_SLUG_RE.match(slug or ""))


def normalize_tags(tags: Iterable[str] | str | None) -> List[str]:
    """Accepts "a, b" or a list; returns trimmed, lower-cased, de-duplicated tags."""
    if not tags:
        return []
    if isinstance(tags, str):
        tags = tags.split(",")
    result: List[str] = []
    for tag in tags:
        tag = tag.strip().lower()
        if tag and tag not in result:
            result.append(tag)
    return result


def dump_list(values: Iterable[str]) -> str:
    return json.dumps(list(values), ensure_ascii=False)


def load_list(raw: Optional[str]) -> List[str]:
    return list(json.loads(raw)) if raw else []


def generate_markdown_table(
    headers: Optional[List[str]],
    rows: List[List[str]],
    aligns: Optional[List[Literal["l", "c", "r"]]] = None,
) -> str:
    """
    Render rows as a Markdown table for the console's Markdown widgets.

    When ``headers`` is None the first row is used as the header. Alignments
    default to left.
    """
    if not rows:
        return ""

    if not headers:
        headers, rows = rows[0], rows[1:]

    headers = [str(h) for h in headers]
    aligns = aligns or ["l"] * len(headers)
    if len(aligns) != len(headers):
        raise ValueError("Length of aligns must match number of headers.")

    markers = {"l": ":---", "c": ":---:", "r": "---:"}
    lines = [
        "| " + " | ".join(headers) + " |",
        "| " + " | ".join(markers[a] for a in aligns) + " |",
    ]
    lines.extend("| " + " | ".join(str(cell) for cell in row) + " |" for row in rows)
    return "\n".join(lines)
