# parsers.py
"""Turn raw generateContent envelopes into models.

Model output is unreliable, so every parser here either recovers something
usable or raises ``MalformedResponseError`` with a machine-readable reason.
"""
import logging
import re
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from .errors import MalformedResponseError
from .lenient_json import extract_json_array
from .models import (ArticleAnalysis, CartoonConcept, ComicScript,
                     ComicScriptPanel, LegacyPanel, TextElement, VisibleText)

logger = logging.getLogger(__name__)

MAX_TEXT_WORDS = 4
TEXT_KINDS = ("dialogue", "sign", "caption", "label")

_QUOTED_RE = re.compile(r'"([^"]+)"')
_LABEL_RE = re.compile(r"\b(?:sign|label|text|caption):\s*([^,.!?]+)", re.IGNORECASE)
_LEADING_INT_RE = re.compile(r"^\s*([+-]?\d+)")


def clamp_score(value: Any, default: int = 50) -> int:
    try:
        score = int(round(float(value)))
    except (TypeError, ValueError):
        return default
    return max(1, min(100, score))


def _text(value: Any) -> str:
    if value is None:
        return ""
    return value.strip() if isinstance(value, str) else str(value).strip()


def response_text(response: Dict[str, Any]) -> str:
    """Text of ``candidates[0].content.parts[0]``, or "" if any link is missing."""
    try:
        text = response["candidates"][0]["content"]["parts"][0].get("text")
    except (KeyError, IndexError, TypeError, AttributeError):
        return ""
    return text if isinstance(text, str) else ""


# ------------------ CONCEPTS ----------------------


def parse_concept_response(response: Dict[str, Any], location: str) -> List[CartoonConcept]:
    items = extract_json_array(response_text(response), objects_only=True)

    concepts = []
    for item in items:
        if not isinstance(item, dict):
            continue
        concepts.append(CartoonConcept(
            title=_text(item.get("title")) or "Untitled",
            premise=_text(item.get("premise")) or "A cartoon concept",
            why_funny=_text(item.get("why_funny")) or "Political commentary",
            location=location,
        ))
    return concepts


# ------------------ COMIC SCRIPT ------------------


def placeholder_panel(number: int) -> ComicScriptPanel:
    return ComicScriptPanel(
        panelNumber=number,
        visualDescription=f"Panel {number}: A scene showing the cartoon concept with visual humor",
        setting="Scene",
    )


def _visible_text(raw: Any) -> List[VisibleText]:
    if not isinstance(raw, list):
        return []
    out = []
    for v in raw:
        if isinstance(v, str):
            out.append(VisibleText(type="sign", content=v))
        elif isinstance(v, dict):
            kind = v.get("type") if v.get("type") in TEXT_KINDS else "sign"
            out.append(VisibleText(type=kind, content=_text(v.get("content"))))
    return out


def _script_panel(raw: Any, index: int) -> ComicScriptPanel:
    if isinstance(raw, str):
        return ComicScriptPanel(panelNumber=index + 1, visualDescription=raw.strip() or
                                "Visual description goes here")
    if not isinstance(raw, dict):
        return placeholder_panel(index + 1)

    number = raw.get("panelNumber")
    if isinstance(number, bool) or not isinstance(number, int) or number < 1:
        number = index + 1
    characters = raw.get("characters")
    return ComicScriptPanel(
        panelNumber=number,
        visualDescription=_text(raw.get("visualDescription")) or "Visual description goes here",
        visibleText=_visible_text(raw.get("visibleText")),
        characters=[_text(c) for c in characters if _text(c)] if isinstance(characters, list) else [],
        setting=_text(raw.get("setting")) or "Scene",
        newsContext=_text(raw.get("newsContext")),
    )


def parse_comic_script(response: Dict[str, Any], expected_panel_count: int = 4) -> List[ComicScriptPanel]:
    """Always returns exactly ``expected_panel_count`` panels."""
    count = max(1, int(expected_panel_count))
    text = response_text(response)
    try:
        items = extract_json_array(text, objects_only=True)
    except MalformedResponseError as e:
        logger.warning("Comic script unparseable (%s); using %d placeholder panels", e.reason, count)
        return [placeholder_panel(i) for i in range(1, count + 1)]

    panels = [_script_panel(raw, i) for i, raw in enumerate(items[:count])]
    if len(items) != count:
        logger.warning("Model returned %d panels, expected %d", len(items), count)
    for i in range(len(panels), count):
        panels.append(placeholder_panel(i + 1))
    return panels


# ------------------ IMAGE ENVELOPE ----------------


@dataclass(frozen=True)
class InlineImage:
    data: str
    mime_type: str = "image/png"


@dataclass(frozen=True)
class TextReply:
    text: str


@dataclass(frozen=True)
class NoCandidates:
    pass


@dataclass(frozen=True)
class NoParts:
    pass


@dataclass(frozen=True)
class EmptyImageData:
    pass


@dataclass(frozen=True)
class Unrecognized:
    pass


ImageEnvelope = Union[InlineImage, TextReply, NoCandidates, NoParts, EmptyImageData, Unrecognized]


def _inline(obj: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    data = obj.get("inlineData", obj.get("inline_data"))
    return data if isinstance(data, dict) else None


def decode_image_envelope(response: Dict[str, Any]) -> ImageEnvelope:
    candidates = response.get("candidates") if isinstance(response, dict) else None
    if not candidates or not isinstance(candidates, list):
        return NoCandidates()
    candidate = candidates[0]
    if not isinstance(candidate, dict):
        return Unrecognized()

    # Some API versions put the image straight on the candidate
    inline = _inline(candidate)
    if inline and inline.get("data"):
        return InlineImage(inline["data"], inline.get("mimeType") or "image/png")

    content = candidate.get("content")
    parts = content.get("parts") if isinstance(content, dict) else None
    if not parts:
        parts = candidate.get("parts")
    if not parts or not isinstance(parts, list):
        return NoParts()

    # Image models may lead with a text part; the first inline part wins
    for part in parts:
        inline = _inline(part) if isinstance(part, dict) else None
        if inline is not None:
            if not inline.get("data"):
                return EmptyImageData()
            return InlineImage(inline["data"], inline.get("mimeType") or "image/png")

    part = parts[0]
    if isinstance(part, dict) and part.get("text"):
        return TextReply(part["text"])
    return Unrecognized()


def parse_image_response(response: Dict[str, Any]) -> Tuple[str, str]:
    """Return ``(base64_data, mime_type)`` from a vision envelope."""
    envelope = decode_image_envelope(response)
    if isinstance(envelope, InlineImage):
        return envelope.data, envelope.mime_type
    if isinstance(envelope, NoCandidates):
        raise MalformedResponseError("No candidates in API response", reason="no_candidates")
    if isinstance(envelope, NoParts):
        raise MalformedResponseError("No parts in API response candidate", reason="no_parts")
    if isinstance(envelope, EmptyImageData):
        raise MalformedResponseError("Image data field is empty in API response", reason="empty_image_data")
    if isinstance(envelope, TextReply):
        logger.warning("Vision model replied with text: %.200s", envelope.text)
        raise MalformedResponseError(
            "API returned text description instead of image. Ensure you are using an image generation model.",
            reason="text_instead_of_image")
    raise MalformedResponseError("Could not extract image data from API response", reason="unrecognized")


# ------------------ ANALYSIS ----------------------


def parse_batch_analysis_response(response: Dict[str, Any]) -> List[ArticleAnalysis]:
    """Best effort; any failure yields an empty list."""
    text = response_text(response).strip()
    try:
        items = extract_json_array(text, objects_only=True)
    except MalformedResponseError as e:
        logger.error("Batch analysis unparseable (%s): %.200s", e.reason, text)
        return []

    results = []
    for item in items:
        if not isinstance(item, dict):
            results.append(ArticleAnalysis())
            continue
        results.append(ArticleAnalysis(
            summary=_text(item.get("summary")),
            humorScore=clamp_score(item.get("humorScore")),
        ))
    return results


def parse_humor_score(text: str) -> int:
    """Leading integer of the reply, clamped to 1..100.

    An empty reply reads as "0" and therefore scores 1; a reply with no
    leading integer scores 50.
    """
    stripped = (text or "").strip() or "0"
    m = _LEADING_INT_RE.match(stripped)
    if not m:
        return 50
    return max(1, min(100, int(m.group(1))))


# ------------------ TEXT ELEMENTS -----------------


def extract_text_elements(script: ComicScript) -> List[TextElement]:
    """Collect every piece of text the image must render, upper-cased."""
    elements: List[TextElement] = []
    for index, panel in enumerate(script.panels):
        number = index + 1
        if isinstance(panel, ComicScriptPanel):
            for vt in panel.visibleText:
                cleaned = vt.content.strip().upper()
                if cleaned:
                    elements.append(TextElement(panel=number, text=cleaned, type=vt.type or "sign"))
            continue

        description = panel if isinstance(panel, str) else (panel.description if isinstance(panel, LegacyPanel) else "")
        for quoted in _QUOTED_RE.findall(description):
            cleaned = quoted.strip().upper()
            if cleaned:
                elements.append(TextElement(panel=number, text=cleaned, type="dialogue"))
        for fragment in _LABEL_RE.findall(description):
            cleaned = fragment.strip().upper()
            if cleaned:
                elements.append(TextElement(panel=number, text=cleaned, type="label"))

    for elem in elements:
        words = len(elem.text.split())
        if words > MAX_TEXT_WORDS:
            logger.warning("Panel %d: text exceeds %d words (%r = %d words)",
                           elem.panel, MAX_TEXT_WORDS, elem.text, words)
    logger.debug("Extracted %d text elements", len(elements))
    return elements


def validate_text_elements(elements: List[TextElement]) -> List[str]:
    """Return human-readable issues; never raises."""
    issues = []
    for elem in elements:
        if not elem.text or not elem.text.strip():
            issues.append(f"Panel {elem.panel}: Empty text element")
            continue
        words = len(elem.text.split())
        if words > MAX_TEXT_WORDS:
            issues.append(f'Panel {elem.panel}: Text exceeds {MAX_TEXT_WORDS} words ("{elem.text}" = {words} words)')
        if elem.text != elem.text.upper():
            issues.append(f'Panel {elem.panel}: Text not in ALL CAPS: "{elem.text}"')
        if re.search(r"[^\w\s\-'!?.]", elem.text):
            logger.info("Panel %d: special characters may render poorly: %r", elem.panel, elem.text)

    for issue in issues:
        logger.warning(issue)
    return issues
