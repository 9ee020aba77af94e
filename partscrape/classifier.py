"""Classification of raw listings into canonical part records.

A listing is kept only if its name mentions a component and is not a
storage-capacity device listing, an accessory, or a tool/kit. The part type
is the listing name with the model and brand names stripped out.
"""

import re
from dataclasses import dataclass
from typing import Optional

from partscrape.models import ClassifiedPart, RawRecord, utc_now_iso

__all__ = [
    "PART_KEYWORDS",
    "ACCESSORY_KEYWORDS",
    "OTHER_KEYWORDS",
    "STORAGE_CAPACITY_RE",
    "Classification",
    "classify",
    "derive_part_type",
    "detect_in_stock",
    "matches_storage_capacity",
]

# Component nouns; matched as substrings of the lower-cased name
PART_KEYWORDS = (
    "volume button", "simcard reader", "flex cable", "vibration", "bottom screws",
    "adhesive tape", "glass", "cover", "display", "screen", "lcd", "digitizer",
    "battery", "camera", "charging", "connector", "flex", "speaker", "microphone",
    "sensor", "frame", "housing", "tray", "antenna", "button", "cable", "dock",
    "earpiece", "vibrator", "motor", "adhesive", "lens", "back", "front",
    "proximity", "face id", "touch id", "home button", "volume", "power", "wifi",
    "bluetooth", "usb", "port", "buzzer", "ring", "bracket", "holder", "clip",
    "mount", "board", "pcb", "chip", "ic", "fpc", "module", "assembly",
    "charging port", "charging dock", "camera lens", "camera glass", "midframe",
    "mid frame", "battery cover", "back cover", "front camera", "rear camera",
    "mainboard", "main board", "logic board", "motherboard", "screw", "screws",
    "micro usb", "type-c", "type c", "lightning", "audio jack", "headphone", "jack",
    "sim card",
)

# Full devices listed with their capacity, e.g. "iPhone 12 Pro Max 256GB"
STORAGE_CAPACITY_RE = re.compile(r"\b(\d{2,4}\s?(gb|tb|g|t|gigabyte|terabyte))\b", re.IGNORECASE)

ACCESSORY_KEYWORDS = (
    "case", "protector", "skin", "shield", "magforce", "softskin", "gelskin",
    "impactskin", "sika", "smoothie", "magshield", "livon", "tactical",
)

OTHER_KEYWORDS = (
    "tool", "tools", "repair", "kit", "set", "sim tool", "sim eject",
)

# Stock wording, English and Dutch. Negations take precedence over the
# positive terms.
OUT_OF_STOCK_TERMS = ("out of stock", "not available", "unavailable", "niet op voorraad", "uitverkocht")
INDICATOR_IN_STOCK_TERMS = ("in stock", "op voorraad", "available")
MARKUP_IN_STOCK_TERMS = ("in stock", "op voorraad")

_DASH_SPACE_RE = re.compile(r"[\s-]+")

REJECT_NO_PART_KEYWORD = "no_part_keyword"
REJECT_STORAGE_CAPACITY = "storage_capacity"
REJECT_ACCESSORY = "accessory"
REJECT_OTHER = "tool_or_kit"
REJECT_EMPTY_TYPE = "empty_type"


@dataclass(frozen=True)
class Classification:
    """Outcome of classifying one listing: either a part or a rejection reason."""

    part: Optional[ClassifiedPart] = None
    reason: Optional[str] = None

    def __post_init__(self) -> None:
        if (self.part is None) == (self.reason is None):
            raise ValueError("Classification needs exactly one of part or reason")

    @property
    def accepted(self) -> bool:
        return self.part is not None

    @property
    def rejected(self) -> bool:
        return self.part is None


def matches_storage_capacity(name: str) -> bool:
    return STORAGE_CAPACITY_RE.search(name) is not None


def _contains_any(text: str, terms) -> bool:
    return any(term in text for term in terms)


def derive_part_type(name: str, brand_name: str, model_name: str) -> str:
    """Strip the model, then the brand, from a listing name.

    Matching is case-insensitive; leftover whitespace and dash runs collapse
    to single spaces. "Apple iPhone 12 LCD Screen" for brand "Apple" and
    model "iPhone 12" gives "LCD Screen".
    """
    remaining = name
    for token in (model_name, brand_name):
        if token:
            remaining = re.sub(re.escape(token), "", remaining, flags=re.IGNORECASE)
    return _DASH_SPACE_RE.sub(" ", remaining).strip()


def detect_in_stock(raw: RawRecord) -> bool:
    """Stock status from the indicator element, else from the listing markup.

    The indicator takes precedence: when it exists, the markup is not read.
    """
    if raw.stock_indicator is not None:
        text = raw.stock_indicator.lower()
        if _contains_any(text, OUT_OF_STOCK_TERMS):
            return False
        return _contains_any(text, INDICATOR_IN_STOCK_TERMS)

    markup = raw.markup.lower()
    if _contains_any(markup, OUT_OF_STOCK_TERMS):
        return False
    return _contains_any(markup, MARKUP_IN_STOCK_TERMS)


def classify(
    raw: RawRecord,
    brand_name: str,
    model_name: str,
    model_category: str = "",
    scraped_at: Optional[str] = None,
) -> Classification:
    """Classify one raw listing for the given brand/model context.

    Args:
        raw: Listing extracted from the model page
        brand_name: Brand the page belongs to
        model_name: Model the page belongs to
        model_category: Category of the model, copied onto the part
        scraped_at: Timestamp to record (default: now)

    Returns:
        Classification with either the part or the first rule that rejected it
    """
    normalized = raw.name.lower()

    if not _contains_any(normalized, PART_KEYWORDS):
        return Classification(reason=REJECT_NO_PART_KEYWORD)
    if matches_storage_capacity(normalized):
        return Classification(reason=REJECT_STORAGE_CAPACITY)
    if _contains_any(normalized, ACCESSORY_KEYWORDS):
        return Classification(reason=REJECT_ACCESSORY)
    if _contains_any(normalized, OTHER_KEYWORDS):
        return Classification(reason=REJECT_OTHER)

    part_type = derive_part_type(raw.name, brand_name, model_name)
    if not part_type:
        return Classification(reason=REJECT_EMPTY_TYPE)

    return Classification(part=ClassifiedPart(
        brand=brand_name,
        model_category=model_category,
        model=model_name,
        name=raw.name,
        part_type=part_type,
        in_stock=detect_in_stock(raw),
        image_url=raw.image_url,
        location=raw.location_text,
        scraped_at=scraped_at or utc_now_iso(),
    ))
