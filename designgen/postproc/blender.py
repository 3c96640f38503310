"""Merges template-rendered skeletons with free-form AI prose."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Dict, List, Optional, Set, Tuple

from ..logging import get_logger

_HEADING = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
_BOLD_LABEL = re.compile(r"^\*\*(.+?)\*\*:?\s*$")
_COLON_LABEL = re.compile(r"^([A-Z][\w /&()-]{1,60}):\s*$")
_FENCE = re.compile(r"^\s*(```|~~~)")
_NON_WORD = re.compile(r"[^a-z0-9]+")


@dataclass
class SkeletonSection:
    """A heading-delimited chunk of the template output."""

    level: int
    title: str
    raw: str


@dataclass(frozen=True)
class AIRegion:
    """A labelled block of AI output."""

    label: str
    text: str


def normalise_label(label: str) -> str:
    return " ".join(_NON_WORD.sub(" ", label.lower()).split())


def _contains_words(haystack: List[str], needle: List[str]) -> bool:
    width = len(needle)
    return any(haystack[start : start + width] == needle for start in range(len(haystack) - width + 1))


def match_score(section_title: str, region_label: str) -> int:
    """2 for an exact normalised match, 1 when one label's words appear whole in the other."""
    title = normalise_label(section_title).split()
    label = normalise_label(region_label).split()
    if not title or not label:
        return 0
    if title == label:
        return 2
    if _contains_words(title, label) or _contains_words(label, title):
        return 1
    return 0


def labels_match(section_title: str, region_label: str) -> bool:
    return match_score(section_title, region_label) > 0


def split_sections(markdown: str) -> List[SkeletonSection]:
    """Split markdown at headings outside fenced code; ``"".join`` restores it."""
    sections: List[SkeletonSection] = []
    current = SkeletonSection(level=0, title="", raw="")
    in_fence = False
    for line in markdown.splitlines(keepends=True):
        if _FENCE.match(line):
            in_fence = not in_fence
        match = None if in_fence else _HEADING.match(line.rstrip("\r\n"))
        if match:
            if current.raw:
                sections.append(current)
            current = SkeletonSection(level=len(match.group(1)), title=match.group(2), raw=line)
        else:
            current.raw += line
    if current.raw:
        sections.append(current)
    return sections


def split_regions(ai_text: str) -> Tuple[str, List[AIRegion]]:
    """Split AI output into an unlabelled preamble and labelled regions."""
    preamble: List[str] = []
    regions: List[Tuple[str, List[str]]] = []
    in_fence = False
    for line in ai_text.splitlines():
        if _FENCE.match(line):
            in_fence = not in_fence
        label = None if in_fence else _region_label(line.strip())
        if label is not None:
            regions.append((label, []))
        elif regions:
            regions[-1][1].append(line)
        else:
            preamble.append(line)
    parsed = [
        AIRegion(label=label, text="\n".join(lines).strip())
        for label, lines in regions
    ]
    return "\n".join(preamble).strip(), [region for region in parsed if region.text]


def _region_label(line: str) -> Optional[str]:
    for pattern in (_HEADING, _BOLD_LABEL, _COLON_LABEL):
        match = pattern.match(line)
        if match:
            return match.group(match.lastindex or 1).strip()
    return None


class EnhancementBlender:
    """Blends AI prose into a template skeleton whose headings stay authoritative."""

    SLOT_MARKER = "<!-- ai:slot -->"
    INSIGHTS_HEADING = "## AI Insights"

    def __init__(self) -> None:
        self.logger = get_logger("postproc.blender")

    def blend(self, template_result: str, ai_text: str) -> str:
        if not ai_text or not ai_text.strip():
            return template_result

        sections = split_sections(template_result)
        preamble, regions = split_regions(ai_text)
        matches = self.match(sections, regions)

        chunks: List[str] = []
        for index, section in enumerate(sections):
            region = matches.get(index)
            chunks.append(section.raw if region is None else self._merge(section, region))
        blended = "".join(chunks).rstrip()

        matched = set(id(region) for region in matches.values())
        leftovers = [region for region in regions if id(region) not in matched]
        insights = self._insights(preamble, leftovers)
        if insights:
            blended = f"{blended}\n\n{insights}" if blended else insights

        self.logger.debug(
            "Blended %d of %d AI regions into %d sections",
            len(matches),
            len(regions),
            len(sections),
        )
        # Unused markers never reach the final document.
        return blended.replace(f"{self.SLOT_MARKER}\n", "").replace(self.SLOT_MARKER, "")

    def match(
        self, sections: List[SkeletonSection], regions: List[AIRegion]
    ) -> Dict[int, AIRegion]:
        """Pair sections with regions, best score first, then AI order, then document order.

        Each section and region is used at most once. Level-1 headings are the
        document title and never receive prose.
        """
        candidates: List[Tuple[int, int, int]] = []
        for section_index, section in enumerate(sections):
            if section.level < 2:
                continue
            for region_index, region in enumerate(regions):
                score = match_score(section.title, region.label)
                if score:
                    candidates.append((-score, region_index, section_index))

        used_regions: Set[int] = set()
        matches: Dict[int, AIRegion] = {}
        for _, region_index, section_index in sorted(candidates):
            if region_index in used_regions or section_index in matches:
                continue
            used_regions.add(region_index)
            matches[section_index] = regions[region_index]
        return matches

    def _merge(self, section: SkeletonSection, region: AIRegion) -> str:
        trailing = section.raw[len(section.raw.rstrip()) :]
        body = section.raw.rstrip()
        if self.SLOT_MARKER in body:
            merged = body.replace(self.SLOT_MARKER, region.text, 1)
        else:
            merged = f"{body}\n\n{region.text}"
        return merged + (trailing or "\n")

    def _insights(self, preamble: str, leftovers: List[AIRegion]) -> str:
        parts: List[str] = []
        if preamble:
            parts.append(preamble)
        for region in leftovers:
            parts.append(f"### {region.label}\n{region.text}")
        if not parts:
            return ""
        return "\n\n".join([self.INSIGHTS_HEADING] + parts)


__all__ = [
    "AIRegion",
    "EnhancementBlender",
    "SkeletonSection",
    "labels_match",
    "match_score",
    "normalise_label",
    "split_regions",
    "split_sections",
]
