# main.py
import io
import re
import sys
import json
import time
import random
import string
import logging
import argparse
from pathlib import Path
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Union

from PIL import Image

from .cache import ImageCache
from .config import DEFAULT_NEWS_LIMIT, OUTPUT_DIR, PRINT_PROMPTS
from .errors import DomainError, NewstoonsError, RateLimitError, user_message
from .gemini import GAIC
from .humor import estimate_humor_score
from .models import (ArticleAnalysis, CartoonConcept, CartoonImage, ComicScript,
                     ConceptSet, NewsArticle)
from .news import NewsService
from .parsers import (extract_text_elements, parse_batch_analysis_response,
                      parse_comic_script, parse_concept_response, parse_humor_score,
                      parse_image_response, response_text, validate_text_elements)
from .prompts import (build_batch_analysis_prompt, build_comic_prompt, build_concept_prompt,
                      build_humor_score_prompt, build_image_prompt)
from .rate_limiter import SlidingWindowRateLimiter

logger = logging.getLogger(__name__)

MAX_CONCEPTS = 5
BATCH_SIZE = 3
BATCH_DELAY = 1.0  # seconds between analysis chunks

# Pipeline states reported through ``on_state``
IDLE = "IDLE"
CACHE_CHECK = "CACHE_CHECK"
RATE_LIMIT_CHECK = "RATE_LIMIT_CHECK"
BUILDING_PROMPT = "BUILDING_PROMPT"
CALLING_API = "CALLING_API"
PARSING = "PARSING"
SUCCESS = "SUCCESS"
FAILED = "FAILED"

ArticleLike = Union[NewsArticle, Mapping[str, Any]]

# ------------------ UTILITIES ---------------------


def ensure_dir(p: Path) -> None:
    p.mkdir(parents=True, exist_ok=True)


def slugify(text: str, fallback: str = "item") -> str:
    text = text.strip().lower()
    text = re.sub(r"[^a-z0-9]+", "-", text).strip("-")
    return text or fallback


def image_bytes_to_pil(b: bytes) -> Image.Image:
    return Image.open(io.BytesIO(b)).convert("RGBA")


def pil_to_png_bytes(img: Image.Image) -> bytes:
    """Converts a PIL Image object to PNG bytes."""
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return buf.getvalue()


def _article_fields(article: ArticleLike) -> Dict[str, Optional[str]]:
    if isinstance(article, NewsArticle):
        return {"title": article.title, "description": article.description, "content": article.content}
    return {
        "title": article.get("title") or "",
        "description": article.get("description"),
        "content": article.get("content"),
    }

# --- Simple prompt logger (stdout + file) ---


class PromptLogger:
    def __init__(self, out_file: Optional[Path] = None):
        self.out_file = out_file
        self.lines: List[str] = []

    def log(self, title: str, content: str):
        block = f"\n===== {title} =====\n{content.strip()}\n"
        self.lines.append(block)
        if PRINT_PROMPTS:
            print(block)

    def flush(self):
        if self.out_file is not None:
            self.out_file.write_text("".join(self.lines), encoding="utf-8")

# ------------------ PIPELINES ---------------------


class CartoonStudio:
    """Concept, script, image and analysis pipelines over one Gemini client.

    The image cache and rate limiter are owned per instance; share one studio
    per process so every request sees the same quota.
    """

    def __init__(self, client: GAIC, image_cache: Optional[ImageCache] = None,
                 rate_limiter: Optional[SlidingWindowRateLimiter] = None,
                 prompt_log: Optional[PromptLogger] = None,
                 on_state: Optional[Callable[[str, str], None]] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.client = client
        self.image_cache = image_cache if image_cache is not None else ImageCache()
        self.rate_limiter = rate_limiter if rate_limiter is not None else SlidingWindowRateLimiter()
        self.prompt_log = prompt_log or PromptLogger()
        self.on_state = on_state
        self.sleep = sleep

    def _state(self, pipeline: str, state: str) -> None:
        logger.debug("[%s] %s", pipeline, state)
        if self.on_state is not None:
            self.on_state(pipeline, state)

    def generate_cartoon_concepts(self, articles: Sequence[NewsArticle], location: str) -> ConceptSet:
        if not articles:
            raise DomainError.cartoon("No articles provided for concept generation")

        self._state("concepts", BUILDING_PROMPT)
        prompt = build_concept_prompt(articles, location)
        self.prompt_log.log("CONCEPT_PROMPT", prompt)
        try:
            self._state("concepts", CALLING_API)
            response = self.client.call_text_api(prompt)
            self.prompt_log.log("CONCEPT_RESPONSE", response_text(response))
            self._state("concepts", PARSING)
            concepts = parse_concept_response(response, location)[:MAX_CONCEPTS]
        except Exception as e:
            self._state("concepts", FAILED)
            raise DomainError.cartoon("Failed to generate cartoon concepts", cause=e) from e

        self._state("concepts", SUCCESS)
        return ConceptSet(
            topic=articles[0].title or "News Topic",
            location=location,
            ideas=concepts,
            ranking=[c.title for c in concepts],
            winner=concepts[0].title if concepts else "",
        )

    def generate_comic_prompt(self, concept: CartoonConcept, articles: Sequence[NewsArticle],
                              panel_count: int = 4) -> ComicScript:
        self._state("script", BUILDING_PROMPT)
        prompt = build_comic_prompt(concept, articles, panel_count)
        self.prompt_log.log(f"COMIC_SCRIPT_PROMPT [{concept.title}]", prompt)
        try:
            self._state("script", CALLING_API)
            response = self.client.call_text_api(prompt)
            self.prompt_log.log(f"COMIC_SCRIPT_RESPONSE [{concept.title}]", response_text(response))
            self._state("script", PARSING)
            panels = parse_comic_script(response, panel_count)
        except Exception as e:
            self._state("script", FAILED)
            raise DomainError.cartoon("Failed to generate comic prompt", cause=e) from e

        self._state("script", SUCCESS)
        return ComicScript(
            panels=panels,
            description=f"Comic prompt for: {concept.title}",
            newsContext="; ".join(a.title for a in articles),
        )

    def generate_cartoon_image(self, concept: CartoonConcept, articles: Sequence[NewsArticle],
                               panel_count: int = 4) -> CartoonImage:
        self._state("image", CACHE_CHECK)
        cached = self.image_cache.get_image(concept)
        if cached is not None:
            logger.info("Image cache hit for %r", concept.title)
            self._state("image", SUCCESS)
            return cached

        self._state("image", RATE_LIMIT_CHECK)
        token = self.rate_limiter.try_reserve()
        if token is None:
            retry_after = self.rate_limiter.time_until_next()
            self._state("image", FAILED)
            raise RateLimitError(retry_after)

        try:
            self._state("image", BUILDING_PROMPT)
            script = self.generate_comic_prompt(concept, articles, panel_count)
            validate_text_elements(extract_text_elements(script))
            image_prompt = build_image_prompt(concept, script, panel_count)
            self.prompt_log.log(f"IMAGE_PROMPT [{concept.title}]", image_prompt)

            self._state("image", CALLING_API)
            response = self.client.call_vision_api(image_prompt)
            self._state("image", PARSING)
            data, mime_type = parse_image_response(response)
        except Exception as e:
            self.rate_limiter.release(token)
            self._state("image", FAILED)
            raise DomainError.cartoon("Failed to generate cartoon image", cause=e) from e

        self.rate_limiter.commit(token)
        image = CartoonImage(base64Data=data, mimeType=mime_type or "image/png")
        self.image_cache.set_image(concept, image)
        self._state("image", SUCCESS)
        return image

    def clear_image_cache(self) -> None:
        self.image_cache.clear()

    def generate_humor_score(self, title: str, description: Optional[str] = None) -> int:
        """Model-rated comedy potential in 1..100; 50 when the call fails."""
        prompt = build_humor_score_prompt(title, description)
        try:
            response = self.client.call_text_api(prompt)
        except NewstoonsError as e:
            logger.error("Humor score failed for %r: %s", title, e)
            return 50
        return parse_humor_score(response_text(response))

    def batch_analyze_articles(self, articles: Sequence[ArticleLike]) -> List[ArticleAnalysis]:
        """One ``ArticleAnalysis`` per article, in order, whatever the model returns."""
        items = [_article_fields(a) for a in articles]
        total = (len(items) + BATCH_SIZE - 1) // BATCH_SIZE
        results: List[ArticleAnalysis] = []

        for start in range(0, len(items), BATCH_SIZE):
            batch = items[start:start + BATCH_SIZE]
            number = start // BATCH_SIZE + 1
            if start > 0:
                self.sleep(BATCH_DELAY)

            prompt = build_batch_analysis_prompt(batch)
            self.prompt_log.log(f"BATCH_ANALYSIS_PROMPT [{number}/{total}]", prompt)
            try:
                parsed = parse_batch_analysis_response(self.client.call_text_api(prompt))
            except NewstoonsError as e:
                logger.error("Batch %d/%d failed: %s", number, total, e)
                parsed = []

            if len(parsed) != len(batch):
                logger.warning("Batch %d/%d: expected %d results, got %d",
                               number, total, len(batch), len(parsed))
            parsed = parsed[:len(batch)]
            parsed += [ArticleAnalysis() for _ in range(len(batch) - len(parsed))]
            results.extend(parsed)

        done = sum(1 for r in results if r.summary)
        logger.info("Analyzed %d/%d articles with AI summaries", done, len(items))
        return results


def default_studio(prompt_log: Optional[PromptLogger] = None,
                   on_state: Optional[Callable[[str, str], None]] = None) -> CartoonStudio:
    return CartoonStudio(GAIC(), ImageCache(), SlidingWindowRateLimiter(),
                         prompt_log=prompt_log, on_state=on_state)


def default_news_service() -> NewsService:
    return NewsService()


def run_pipeline(studio: CartoonStudio, news: NewsService, out_root: Path,
                 location: Optional[str] = None, keyword: Optional[str] = None,
                 panel_count: int = 4, concept_index: int = 0,
                 limit: int = DEFAULT_NEWS_LIMIT) -> Dict[str, Any]:
    """
    Run the comic generation pipeline: news -> concepts -> script -> image.

    Args:
        studio: Cartoon pipelines to use
        news: News service to fetch articles from
        out_root: Output directory
        location: City to fetch news for (takes precedence over keyword)
        keyword: Search term when no location is given
        panel_count: Panels in the strip
        concept_index: Which of the generated concepts to draw

    Returns the manifest written to ``out_root / "manifest.json"``.
    """
    ensure_dir(out_root)
    if studio.prompt_log.out_file is None:
        studio.prompt_log.out_file = out_root / "prompts_used.txt"

    print(">> Fetching news...")
    if location:
        feed = news.fetch_news_by_location(location, limit)
    else:
        feed = news.fetch_news_by_keyword(keyword or "", limit)
    articles = feed.articles
    print(f"   Articles: {len(articles)}")
    if not articles:
        raise DomainError.news(f"No articles found for {feed.topic}")

    print(">> Generating cartoon concepts...")
    concepts = studio.generate_cartoon_concepts(articles, location or feed.topic)
    print(f"   Concepts: {concepts.ranking}")
    if not concepts.ideas:
        raise DomainError.cartoon("The model returned no cartoon concepts")
    concept = concepts.ideas[min(concept_index, len(concepts.ideas) - 1)]
    print(f"   ✓ Drawing: {concept.title}")

    print(f">> Rendering {panel_count}-panel cartoon...")
    image = studio.generate_cartoon_image(concept, articles, panel_count)
    img = image_bytes_to_pil(image.to_bytes())
    fname = f"{slugify(concept.title)}.png"
    (out_root / fname).write_bytes(pil_to_png_bytes(img))
    print(f"   ✓ {concept.title} -> {fname} ({img.size[0]}x{img.size[1]})")

    manifest = {
        "meta": {"topic": concepts.topic, "location": concepts.location, "panelCount": panel_count,
                 "generatedAt": image.generatedAt},
        "articles": [{"title": a.title, "url": a.url, "source": a.source.name,
                      "authorityScore": a.authorityScore, "mainstreamRank": a.mainstreamRank}
                     for a in articles],
        "concepts": [c.model_dump() for c in concepts.ideas],
        "winner": concepts.winner,
        "concept": concept.model_dump(),
        "image": {"file": fname, "mimeType": image.mimeType},
    }
    (out_root / "manifest.json").write_text(json.dumps(manifest, indent=2), encoding="utf-8")

    # Save all prompts used
    studio.prompt_log.flush()
    print(f">> Done. Output at: {out_root}")
    return manifest

# ------------------ CLI -------------------------


def _add_query_args(p: argparse.ArgumentParser) -> None:
    g = p.add_mutually_exclusive_group(required=True)
    g.add_argument("--location", help="City to fetch local news for, e.g. Melbourne")
    g.add_argument("--keyword", help="Search term")
    p.add_argument("--limit", type=int, default=DEFAULT_NEWS_LIMIT)
    p.add_argument("--all", action="store_true", help="Do not restrict to authoritative results")


def _fetch(news: NewsService, args: argparse.Namespace):
    if args.location:
        return news.fetch_news_by_location(args.location, args.limit, not args.all)
    return news.fetch_news_by_keyword(args.keyword, args.limit, not args.all)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="newstoons", description="Editorial cartoons from today's news")
    parser.add_argument("-v", "--verbose", action="store_true")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("news", help="List ranked articles")
    _add_query_args(p)

    p = sub.add_parser("concepts", help="Propose cartoon concepts for the news")
    _add_query_args(p)

    p = sub.add_parser("comic", help="Fetch news and render a cartoon")
    _add_query_args(p)
    p.add_argument("--panels", type=int, default=4)
    p.add_argument("--concept", type=int, default=0, help="Index of the concept to draw")
    p.add_argument("--out", type=Path, default=None)

    p = sub.add_parser("analyze", help="Summarize and score articles for cartoon potential")
    _add_query_args(p)
    p.add_argument("--offline", action="store_true", help="Keyword heuristic only, no API calls")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING,
                        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    news = default_news_service()

    try:
        if args.command == "news":
            feed = _fetch(news, args)
            for a in feed.articles:
                rank = f" [mainstream #{a.mainstreamRank}]" if a.mainstreamRank else ""
                print(f"{a.rankPosition:>2}. ({a.authorityScore}) {a.title} - {a.source.name}{rank}")

        elif args.command == "concepts":
            feed = _fetch(news, args)
            concepts = default_studio().generate_cartoon_concepts(feed.articles, args.location or feed.topic)
            for i, c in enumerate(concepts.ideas):
                print(f"{i}. {c.title}\n   {c.premise}\n   Why: {c.why_funny}")

        elif args.command == "comic":
            slug = slugify(args.location or args.keyword)
            run_id = "".join(random.choices(string.ascii_lowercase + string.digits, k=6))
            out_dir = args.out or OUTPUT_DIR / f"{slug}-{run_id}"
            run_pipeline(default_studio(PromptLogger(out_dir / "prompts_used.txt")), news, out_dir,
                         location=args.location, keyword=args.keyword, panel_count=args.panels,
                         concept_index=args.concept, limit=args.limit)

        elif args.command == "analyze":
            feed = _fetch(news, args)
            if args.offline:
                for a in feed.articles:
                    print(f"{estimate_humor_score(a.title, a.description):>3}  {a.title}")
            else:
                for a, r in zip(feed.articles, default_studio().batch_analyze_articles(feed.articles)):
                    print(f"{r.humorScore:>3}  {a.title}\n     {r.summary or '(no summary)'}")
    except NewstoonsError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"!! {user_message(e)} ({e})", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
