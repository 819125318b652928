"""Catalogue of public APIs and AI models.

Entries come from the bundled JSON dataset (grouped by category) or from the
Hugging Face model listing.  The catalogue is immutable once loaded.
"""

from __future__ import annotations

import json
import logging
import random
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Iterable, Iterator
from dataclasses import dataclass
from pathlib import Path

from .models import CatalogueEntry

logger = logging.getLogger(__name__)

BUNDLED_CATALOGUE = Path(__file__).parent / "data" / "catalogue.json"
HUGGINGFACE_MODELS_URL = "https://huggingface.co/api/models"
DEFAULT_PER_PAGE = 24
DEFAULT_COLOR = "#000000"

# group -> (colour, subcategories)
CATEGORY_GROUPS: dict[str, tuple[str, tuple[str, ...]]] = {
    "Technology & Development": ("#F3A712", (
        "Development", "Machine Learning", "Continuous Integration",
        "Cloud Storage & File Sharing", "Data Validation", "Anti-Malware",
        "Security", "Open Source Projects",
    )),
    "Business & Finance": ("#FF8C42", (
        "Business", "Finance", "Cryptocurrency", "Currency Exchange", "Jobs", "Shopping",
    )),
    "Government & Society": ("#FF674D", (
        "Government", "Open Data", "Patent", "Fraud Prevention", "Disasters", "Environment",
    )),
    "Entertainment & Media": ("#FF6B6B", (
        "Music", "Video", "Games & Comics", "Anime", "Books", "News",
    )),
    "Lifestyle & Health": ("#66D7D1", (
        "Health", "Food & Drink", "Sports & Fitness", "Events", "Calendar",
    )),
    "Education & Knowledge": ("#B7C3F3", (
        "Education", "Science & Math", "Dictionaries", "Text Analysis",
    )),
    "Arts & Culture": ("#45B7D1", ("Art & Design", "Photography")),
    "Transportation & Location": ("#0EBE78", ("Transportation", "Vehicle", "Geocoding")),
    "Nature & Animals": ("#90BE6D", ("Animals", "Weather")),
    "Utilities & Tools": ("#F8961E", (
        "Documents & Productivity", "URL Shorteners", "Test Data", "Tracking",
    )),
    "Social & Personal": ("#577590", ("Social", "Personality")),
}

# Hugging Face pipeline_tag -> display category
PIPELINE_CATEGORIES: dict[str, str] = {
    "text-generation": "Text Generation",
    "text2text-generation": "Text2Text Generation",
    "text-classification": "Text Classification",
    "token-classification": "Token Classification",
    "question-answering": "Question Answering",
    "table-question-answering": "Table Question Answering",
    "zero-shot-classification": "Zero-Shot Classification",
    "translation": "Translation",
    "summarization": "Summarization",
    "feature-extraction": "Feature Extraction",
    "fill-mask": "Fill-Mask",
    "sentence-similarity": "Sentence Similarity",
    "text-to-image": "Text-to-Image",
    "image-to-text": "Image-to-Text",
    "image-classification": "Image Classification",
    "object-detection": "Object Detection",
    "image-segmentation": "Image Segmentation",
    "depth-estimation": "Depth Estimation",
    "image-to-image": "Image-to-Image",
    "unconditional-image-generation": "Unconditional Image Generation",
    "video-classification": "Video Classification",
    "text-to-video": "Text-to-Video",
    "zero-shot-image-classification": "Zero-Shot Image Classification",
    "image-to-3d": "Image-to-3D",
    "text-to-3d": "Text-to-3D",
    "visual-question-answering": "Visual Question Answering",
    "document-question-answering": "Document Question Answering",
    "image-to-video": "Image-to-Video",
    "text-to-speech": "Text-to-Speech",
    "automatic-speech-recognition": "Automatic Speech Recognition",
    "audio-to-audio": "Audio-to-Audio",
    "audio-classification": "Audio Classification",
    "voice-activity-detection": "Voice Activity Detection",
    "zero-shot-object-detection": "Zero-Shot Object Detection",
}


def category_group(category: str) -> str | None:
    for group, (_color, subcategories) in CATEGORY_GROUPS.items():
        if category in subcategories:
            return group
    return None


def category_color(category: str) -> str:
    """Display colour for a category (or group name); black if unknown."""
    if category in CATEGORY_GROUPS:
        return CATEGORY_GROUPS[category][0]
    group = category_group(category)
    return CATEGORY_GROUPS[group][0] if group else DEFAULT_COLOR


@dataclass(frozen=True)
class Page:
    entries: list[CatalogueEntry]
    page: int
    per_page: int
    total: int

    @property
    def total_pages(self) -> int:
        return max(1, -(-self.total // self.per_page))


class Catalogue:
    """Immutable, name-indexed collection of catalogue entries."""

    def __init__(self, entries: Iterable[CatalogueEntry]) -> None:
        unique: dict[str, CatalogueEntry] = {}
        for entry in entries:
            # first occurrence wins when the dataset lists a name twice
            unique.setdefault(entry.name, entry)
        self._entries: tuple[CatalogueEntry, ...] = tuple(unique.values())
        self._by_name = unique

    def __iter__(self) -> Iterator[CatalogueEntry]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, name: object) -> bool:
        return name in self._by_name

    @property
    def entries(self) -> tuple[CatalogueEntry, ...]:
        return self._entries

    def get(self, name: str) -> CatalogueEntry | None:
        return self._by_name.get(name)

    def categories(self) -> list[str]:
        return sorted({e.category for e in self._entries if e.category})

    def filter(self, search: str = "", category: str = "") -> list[CatalogueEntry]:
        """Case-insensitive text search plus an optional category (or group) filter."""
        needle = search.strip().lower()
        results = []
        for entry in self._entries:
            if category and entry.category != category and category_group(entry.category) != category:
                continue
            if needle and not (
                needle in entry.name.lower()
                or needle in entry.description.lower()
                or needle in entry.category.lower()
            ):
                continue
            results.append(entry)
        return results

    def shuffled(self, seed: int | None = None) -> "Catalogue":
        entries = list(self._entries)
        random.Random(seed).shuffle(entries)
        return Catalogue(entries)


def paginate(entries: list[CatalogueEntry], page: int = 1, per_page: int = DEFAULT_PER_PAGE) -> Page:
    """Slice *entries* into 1-based pages; out-of-range pages are empty."""
    per_page = max(1, per_page)
    page = max(1, page)
    start = (page - 1) * per_page
    return Page(entries=entries[start:start + per_page], page=page, per_page=per_page, total=len(entries))


def parse_catalogue(data: object) -> list[CatalogueEntry]:
    """Accept either ``{category: [entry, ...]}`` or a flat list of entries."""
    if isinstance(data, dict):
        raw_entries = [item for group in data.values() if isinstance(group, list) for item in group]
    elif isinstance(data, list):
        raw_entries = data
    else:
        raise ValueError("Catalogue must be a JSON object or array.")
    return [CatalogueEntry.model_validate(item) for item in raw_entries]


def load_catalogue(path: Path | None = None) -> Catalogue:
    source = path or BUNDLED_CATALOGUE
    data = json.loads(source.read_text(encoding="utf-8"))
    catalogue = Catalogue(parse_catalogue(data))
    logger.debug("Loaded %d catalogue entries from %s", len(catalogue), source)
    return catalogue


def model_to_entry(model: dict) -> CatalogueEntry:
    """Map one Hugging Face ``/api/models`` record onto a catalogue entry."""
    model_id = str(model.get("id") or model.get("modelId") or "")
    card = model.get("cardData") if isinstance(model.get("cardData"), dict) else {}
    description = (
        card.get("description")
        or model.get("description")
        or model.get("tagline")
        or "No description available"
    )
    pipeline_tag = model.get("pipeline_tag")
    if pipeline_tag:
        category = PIPELINE_CATEGORIES.get(str(pipeline_tag).lower(), str(pipeline_tag))
    else:
        category = "Language Model"
    return CatalogueEntry(
        name=model_id,
        description=str(description),
        category=category,
        url=f"https://huggingface.co/{model_id}",
        downloads=model.get("downloads"),
        likes=model.get("likes"),
        tags=tuple(model.get("tags") or ()),
    )


def fetch_model_catalogue(token: str, *, limit: int = 1100, timeout: float = 30.0) -> Catalogue:
    """Fetch the Hugging Face model listing. Blocking."""
    if not token:
        raise ValueError("A Hugging Face token is required to list models.")
    query = urllib.parse.urlencode({"limit": limit})
    req = urllib.request.Request(
        f"{HUGGINGFACE_MODELS_URL}?{query}",
        headers={"Authorization": f"Bearer {token}"},
        method="GET",
    )
    try:
        with urllib.request.urlopen(req, timeout=timeout) as resp:
            data = json.loads(resp.read().decode("utf-8"))
    except urllib.error.HTTPError as exc:
        error_body = exc.read().decode("utf-8", errors="replace")
        raise RuntimeError(f"Model listing failed ({exc.code}): {error_body}") from exc
    if not isinstance(data, list):
        raise RuntimeError("Model listing returned an unexpected payload.")
    return Catalogue(model_to_entry(m) for m in data if isinstance(m, dict))
