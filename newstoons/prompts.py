# prompts.py
import logging
import re
from pathlib import Path
from typing import List, Mapping, Optional, Sequence

from .models import CartoonConcept, ComicScript, ComicScriptPanel, LegacyPanel, NewsArticle
from .parsers import extract_text_elements

logger = logging.getLogger(__name__)

# ------------------ PROMPTS -----------------------
PROMPTS_DIR = Path(__file__).parent / "prompts"
_PLACEHOLDER_RE = re.compile(r"\{(\w+)\}")


def load_prompt(name: str) -> str:
    p = PROMPTS_DIR / f"{name}.txt"
    if not p.exists():
        raise FileNotFoundError(f"Prompt file not found: {p}")
    return p.read_text(encoding="utf-8").rstrip("\n")


def fill(template: str, **kv):
    """Replace named placeholders in one pass, leaving JSON braces and
    placeholder-like text inside substituted values alone."""
    return _PLACEHOLDER_RE.sub(lambda m: kv.get(m.group(1), m.group(0)), template)


CONCEPT_TEMPLATE = load_prompt("concept")
COMIC_SCRIPT_TEMPLATE = load_prompt("comic_script")
IMAGE_TEMPLATE = load_prompt("image")
HUMOR_SCORE_TEMPLATE = load_prompt("humor_score")
BATCH_ANALYSIS_TEMPLATE = load_prompt("batch_analysis")

# One worked example per supported panel count
SCRIPT_EXAMPLES = {n: load_prompt(f"script_example_{n}") for n in (1, 2, 3, 4)}


def spell_out(text: str) -> str:
    """Spell text letter by letter: HELLO -> [H] [E] [L] [L] [O]."""
    return " ".join(f"[{ch}]" for ch in text)


def example_script(panel_count: int) -> str:
    return SCRIPT_EXAMPLES.get(panel_count, SCRIPT_EXAMPLES[4])


def build_concept_prompt(articles: Sequence[NewsArticle], location: str) -> str:
    headlines = "\n".join(f"- {a.title}\n  {a.description or ''}" for a in articles)
    return fill(CONCEPT_TEMPLATE, location=location, headlines=headlines)


def build_comic_prompt(concept: CartoonConcept, articles: Sequence[NewsArticle], panel_count: int = 4) -> str:
    news_section = ""
    if articles:
        stories = "\n".join(
            f"- {a.title}\n  Summary: {a.description or 'No description available'}" for a in articles[:3])
        news_section = f"\nNEWS STORIES BEING SATIRIZED:\n{stories}\n"

    panel_word = "panel" if panel_count == 1 else "panels"
    return fill(
        COMIC_SCRIPT_TEMPLATE,
        panel_count=str(panel_count),
        panel_word=panel_word,
        panel_word_upper=panel_word.upper(),
        title=concept.title,
        premise=concept.premise,
        why_funny=concept.why_funny or "Visual satire of current events",
        location=concept.location,
        news_section=news_section,
        example=example_script(panel_count),
    )


def _panel_visual(panel, number: int) -> str:
    if isinstance(panel, str):
        return f"Panel {number}: {panel}"
    if isinstance(panel, ComicScriptPanel):
        return f"Panel {number}: {panel.visualDescription}"
    if isinstance(panel, LegacyPanel):
        return f"Panel {number}: {panel.description or 'Visual scene'}"
    return f"Panel {number}: Visual scene"


def build_image_prompt(concept: CartoonConcept, script: ComicScript, panel_count: int = 4) -> str:
    elements = extract_text_elements(script)
    logger.debug("Building image prompt with %d text elements", len(elements))

    text_manifest = ""
    if elements:
        lines = "\n".join(f"Panel {e.panel} ({e.type}): [{spell_out(e.text)}]" for e in elements)
        text_manifest = f"\nTEXT TO RENDER IN IMAGE:\n{lines}\n"

    if panel_count == 1:
        panel_description = "Single panel editorial cartoon"
    else:
        panel_description = f"{panel_count}-panel comic strip (horizontal layout)"

    return fill(
        IMAGE_TEMPLATE,
        panel_description=panel_description,
        title=concept.title,
        premise=concept.premise,
        location=concept.location,
        panel_visuals="\n".join(_panel_visual(p, i + 1) for i, p in enumerate(script.panels)),
        text_manifest=text_manifest,
    )


def build_humor_score_prompt(title: str, description: Optional[str] = None) -> str:
    description_line = f"Description: {description}" if description else ""
    return fill(HUMOR_SCORE_TEMPLATE, title=title, description_line=description_line)


def build_batch_analysis_prompt(batch: Sequence[Mapping[str, Optional[str]]]) -> str:
    """``batch`` items carry ``title`` and optional ``description``/``content``."""
    blocks: List[str] = []
    for idx, article in enumerate(batch):
        content = article.get("content")
        excerpt = f"Content excerpt: {content[:300]}..." if content else ""
        blocks.append(
            f"\nArticle {idx + 1}:\n"
            f"Title: {article.get('title') or ''}\n"
            f"Description: {article.get('description') or 'No description'}\n"
            f"{excerpt}\n"
        )

    extra_entry = ',\n  {"summary": "...", "humorScore": 65}' if len(batch) > 2 else ""
    return fill(
        BATCH_ANALYSIS_TEMPLATE,
        count=str(len(batch)),
        articles="\n---\n".join(blocks),
        extra_entry=extra_entry,
    )
