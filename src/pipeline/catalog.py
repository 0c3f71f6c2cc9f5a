import csv
import io
import re
import unicodedata
from typing import Dict, Iterator, List, Sequence, Tuple, TypeVar

from pydantic import BaseModel, Field

from .state import ItemError

T = TypeVar("T")

Row = Dict[str, str]

REQUIRED_COLUMNS = [
    "Handle",
    "Title",
    "Body (HTML)",
    "Vendor",
    "Type",
    "Tags",
    "Published",
    "Variant Price",
    "Image Src",
    "Image Position",
]

PREVIEW_SIZE = 5


class ProductPreview(BaseModel):
    handle: str
    title: str = ""
    body_html: str = ""
    vendor: str = ""
    type: str = ""
    tags: str = ""
    published: str = ""
    variant_price: str = ""
    image_src: str = ""
    image_position: str = ""


class CatalogReport(BaseModel):
    total_products: int = 0
    validated_products: int = 0
    missing_columns: List[str] = Field(default_factory=list)
    errors: List[ItemError] = Field(default_factory=list)
    preview: List[ProductPreview] = Field(default_factory=list)

    @property
    def usable(self) -> bool:
        return not self.missing_columns and self.validated_products > 0


# --------- parsing ---------
def parse_catalog(text: str) -> Tuple[List[str], List[Row]]:
    """Header list plus one dict per non-blank row, values stripped."""
    reader = csv.DictReader(io.StringIO(text or ""))
    headers = [h.strip() for h in (reader.fieldnames or [])]
    rows: List[Row] = []
    for raw in reader:
        values = [(v or "").strip() if isinstance(v, str) else "" for v in raw.values()]
        if not any(values):
            continue
        rows.append({h: (raw.get(k) or "").strip() for h, k in zip(headers, reader.fieldnames)})
    return headers, rows


def find_column(row: Row, name: str) -> str:
    """Exact header first, then a case-insensitive match."""
    if name in row:
        return row[name] or ""
    lower = name.lower()
    for key, value in row.items():
        if key and key.lower() == lower:
            return value or ""
    return ""


def group_by_handle(rows: Sequence[Row]) -> Dict[str, List[Row]]:
    """Variant rows share a handle; first row carries the product fields. Insertion ordered."""
    grouped: Dict[str, List[Row]] = {}
    for row in rows:
        handle = find_column(row, "Handle")
        if not handle:
            continue
        grouped.setdefault(handle, []).append(row)
    return grouped


def normalize_price(raw: str) -> str:
    return (raw or "").strip().replace(",", ".")


def priced_rows(rows: Sequence[Row]) -> List[Row]:
    return [r for r in rows if find_column(r, "Variant Price")]


# --------- validation ---------
def _preview(rows: List[Row]) -> ProductPreview:
    first = rows[0]
    return ProductPreview(
        handle=find_column(first, "Handle"),
        title=find_column(first, "Title"),
        body_html=find_column(first, "Body (HTML)"),
        vendor=find_column(first, "Vendor"),
        type=find_column(first, "Type"),
        tags=find_column(first, "Tags"),
        published=find_column(first, "Published"),
        variant_price=find_column(first, "Variant Price"),
        image_src=find_column(first, "Image Src"),
        image_position=find_column(first, "Image Position"),
    )


def validate_catalog(text: str) -> CatalogReport:
    headers, rows = parse_catalog(text)
    if not headers:
        return CatalogReport(errors=[ItemError(key="_catalog", reason="empty or unreadable CSV")])

    missing = [c for c in REQUIRED_COLUMNS if c not in headers]
    if missing:
        return CatalogReport(
            missing_columns=missing,
            errors=[ItemError(key="_catalog", reason="missing columns: " + ", ".join(missing))],
        )

    errors: List[ItemError] = []
    grouped: Dict[str, List[Row]] = {}
    for idx, row in enumerate(rows):
        line = idx + 2  # header is line 1
        handle = find_column(row, "Handle")
        if not handle:
            errors.append(ItemError(key=f"line {line}", reason="Handle missing"))
            continue
        if not find_column(row, "Title") and handle not in grouped:
            errors.append(ItemError(key=handle, reason=f"line {line}: Title missing"))
        if not find_column(row, "Variant Price"):
            errors.append(ItemError(key=handle, reason=f"line {line}: Variant Price missing"))
        grouped.setdefault(handle, []).append(row)

    validated = sum(
        1 for product_rows in grouped.values()
        if find_column(product_rows[0], "Title") and priced_rows(product_rows)
    )
    return CatalogReport(
        total_products=len(grouped),
        validated_products=validated,
        errors=errors,
        preview=[_preview(r) for r in list(grouped.values())[:PREVIEW_SIZE]],
    )


# --------- small helpers ---------
def slugify(text: str) -> str:
    t = unicodedata.normalize("NFD", (text or "").lower())
    t = "".join(ch for ch in t if not unicodedata.combining(ch))
    return re.sub(r"[^a-z0-9]+", "-", t).strip("-")


def is_valid_hex(color: str) -> bool:
    return bool(re.fullmatch(r"#[0-9a-fA-F]{6}", color or ""))


def chunk(items: Sequence[T], size: int) -> Iterator[List[T]]:
    for i in range(0, len(items), size):
        yield list(items[i:i + size])
