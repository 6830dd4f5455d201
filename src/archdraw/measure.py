"""Text measurement backed by Pillow font metrics."""
from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from PIL import ImageFont

DEFAULT_FONT_FAMILY = "sans-serif"
GENERIC_FONT_FALLBACKS = {
    "sans-serif": ["Helvetica", "Arial", "Liberation Sans", "DejaVu Sans"],
    "serif": ["Times New Roman", "Times", "Liberation Serif", "DejaVu Serif"],
    "monospace": [
        "Courier New",
        "Courier",
        "Liberation Mono",
        "DejaVu Sans Mono",
    ],
}


@dataclass(frozen=True)
class Size:
    width: float
    height: float


@dataclass(frozen=True)
class TextConstraints:
    font_size: float = 16.0
    font_family: Optional[str] = None
    font_path: Optional[str] = None
    max_width: Optional[float] = None


@dataclass(frozen=True)
class TextBlock:
    """Wrapped lines plus the extent they occupy."""

    lines: Tuple[str, ...]
    width: float
    height: float
    ascent: float
    line_height: float


class TextMeasurer:
    """Caches Pillow fonts and measures (optionally wrapped) labels."""

    FONT_DIRS = [
        Path("/System/Library/Fonts"),
        Path("/System/Library/Fonts/Supplemental"),
        Path("/Library/Fonts"),
        Path("~/Library/Fonts").expanduser(),
        Path("/usr/share/fonts"),
        Path("/usr/local/share/fonts"),
        Path("C:/Windows/Fonts"),
    ]

    def __init__(self) -> None:
        self._font_cache: Dict[Tuple[str, int], ImageFont.ImageFont] = {}
        self._font_paths: Dict[str, Optional[str]] = {}

    def measure(self, text: str, constraints: Optional[TextConstraints] = None) -> Size:
        block = self.layout_text(text, constraints)
        return Size(block.width, block.height)

    def layout_text(self, text: str, constraints: Optional[TextConstraints] = None) -> TextBlock:
        constraints = constraints or TextConstraints()
        content = (text or "").strip()
        if not content:
            return TextBlock(lines=(), width=0.0, height=0.0, ascent=0.0, line_height=0.0)
        ascent, descent, line_height = self.metrics(constraints)
        if constraints.max_width is not None:
            lines = self.wrap_lines(content, constraints.max_width, constraints)
        else:
            lines = [" ".join(content.split())]
        width = max(self.text_width(line, constraints) for line in lines)
        height = ascent + descent + (len(lines) - 1) * line_height
        return TextBlock(
            lines=tuple(lines),
            width=width,
            height=height,
            ascent=ascent,
            line_height=line_height,
        )

    def wrap_lines(self, text: str, width_limit: float, constraints: TextConstraints) -> List[str]:
        words = re.split(r"(\s+)", text.strip())
        lines: List[str] = []
        current = ""
        for chunk in words:
            if not chunk:
                continue
            candidate = (current + chunk) if current else chunk
            if self.text_width(candidate.strip(), constraints) <= width_limit:
                current = candidate
                continue
            if current.strip():
                lines.append(current.strip())
            current = chunk.strip()
        if current.strip():
            lines.append(current.strip())
        return lines or [""]

    def text_width(self, text: str, constraints: TextConstraints) -> float:
        font = self.font(constraints)
        return float(font.getlength(text))

    def metrics(self, constraints: TextConstraints) -> Tuple[float, float, float]:
        size = constraints.font_size
        font = self.font(constraints)
        try:
            ascent, descent = font.getmetrics()
        except AttributeError:
            # bitmap fonts without FreeType metrics
            ascent, descent = 0.8 * size, 0.2 * size
        ascent = float(ascent)
        descent = float(descent)
        line_height = ascent + descent
        inner = getattr(font, "font", None)
        units_per_em = getattr(inner, "units_per_EM", None)
        height_units = getattr(inner, "height", None)
        if units_per_em and height_units and height_units > 0:
            line_height = float(height_units) * (size / units_per_em)
        return ascent, descent, line_height

    def font(self, constraints: TextConstraints) -> ImageFont.ImageFont:
        key_size = max(1, int(round(constraints.font_size)))
        family = constraints.font_family or DEFAULT_FONT_FAMILY
        cache_key = ((constraints.font_path or family).lower(), key_size)
        if cache_key in self._font_cache:
            return self._font_cache[cache_key]

        candidates: List[str] = []
        if constraints.font_path:
            candidates.append(constraints.font_path)
        for fam in GENERIC_FONT_FALLBACKS.get(family.lower(), [family]):
            resolved = self._locate_font(fam)
            if resolved:
                candidates.append(resolved)
        candidates.append("DejaVuSans.ttf")

        font: Optional[ImageFont.ImageFont] = None
        for candidate in candidates:
            path, index = self._parse_font_candidate(candidate)
            try:
                font = ImageFont.truetype(path, key_size, index=index)
                break
            except OSError:
                continue
        if font is None:
            font = ImageFont.load_default(size=key_size)

        self._font_cache[cache_key] = font
        return font

    def _locate_font(self, family: str) -> Optional[str]:
        key = family.lower()
        if key in self._font_paths:
            return self._font_paths[key]
        normalized = re.sub(r"[^a-z0-9]+", "", family, flags=re.IGNORECASE).lower()
        if not normalized:
            self._font_paths[key] = None
            return None
        aliases = {normalized, normalized + "mt", normalized + "psmt"}
        best_match: Optional[Tuple[int, str]] = None
        for directory in self.FONT_DIRS:
            if not directory.exists():
                continue
            for pattern in ("*.ttf", "*.ttc"):
                try:
                    paths = sorted(directory.rglob(pattern))
                except OSError:
                    continue
                for path in paths:
                    stem = re.sub(r"[^a-z0-9]+", "", path.stem, flags=re.IGNORECASE).lower()
                    if stem in aliases:
                        score = 0
                    elif stem.startswith(normalized):
                        score = 1
                    elif normalized in stem:
                        score = 2
                    else:
                        continue
                    candidate = str(path) if pattern == "*.ttf" else f"{path};0"
                    if best_match is None or score < best_match[0]:
                        best_match = (score, candidate)
        resolved = best_match[1] if best_match else None
        self._font_paths[key] = resolved
        return resolved

    @staticmethod
    def _parse_font_candidate(candidate: str) -> Tuple[str, int]:
        if ";" in candidate:
            path, idx = candidate.split(";", 1)
            try:
                return path, int(idx)
            except ValueError:
                return path, 0
        return candidate, 0


_TEXT_MEASURER = TextMeasurer()


def measure(text: str, constraints: Optional[TextConstraints] = None) -> Size:
    """Return the pixel extent ``text`` occupies under ``constraints``."""
    return _TEXT_MEASURER.measure(text, constraints)


def default_measurer() -> TextMeasurer:
    return _TEXT_MEASURER


__all__ = ["Size", "TextConstraints", "TextBlock", "TextMeasurer", "measure", "default_measurer"]
