import base64
import io
import json

import pytest
from PIL import Image

from conftest import FakeGemini, FakeResponse, FakeSession, image_envelope, text_envelope
from newstoons.cache import ImageCache
from newstoons.errors import CARTOON_ERROR, DomainError, MalformedResponseError, RateLimitError, TransportError
from newstoons.main import (BUILDING_PROMPT, CACHE_CHECK, CALLING_API, PARSING, RATE_LIMIT_CHECK, SUCCESS,
                            CartoonStudio, build_parser, run_pipeline, slugify)
from newstoons.models import CartoonConcept
from newstoons.news import NewsService
from newstoons.rate_limiter import SlidingWindowRateLimiter


def _concepts_json(n):
    return json.dumps([{"title": f"Idea {i}", "premise": f"Premise {i}", "why_funny": "Irony"} for i in range(n)])


def _script_json(n):
    return json.dumps([
        {"panelNumber": i, "visualDescription": f"Scene {i}",
         "visibleText": [{"type": "sign", "content": "VOTE NOW"}], "characters": ["pigeon"]}
        for i in range(1, n + 1)
    ])


def _studio(gemini, clock=None, events=None, delays=None):
    on_state = (lambda pipeline, step: events.append((pipeline, step))) if events is not None else None
    return CartoonStudio(gemini, ImageCache(clock=clock) if clock else ImageCache(),
                         SlidingWindowRateLimiter(2, 60, clock) if clock else SlidingWindowRateLimiter(2, 60),
                         on_state=on_state, sleep=(delays.append if delays is not None else lambda s: None))


def _png_b64():
    buf = io.BytesIO()
    Image.new("RGB", (4, 3), "white").save(buf, format="PNG")
    return base64.b64encode(buf.getvalue()).decode("ascii")


# ---------- concepts ----------

def test_concepts_capped_at_five(articles):
    gemini = FakeGemini(text=[text_envelope(_concepts_json(7))])
    concepts = _studio(gemini).generate_cartoon_concepts(articles, "Melbourne")

    assert len(concepts.ideas) == 5
    assert all(c.title and c.premise and c.why_funny for c in concepts.ideas)
    assert all(c.location == "Melbourne" for c in concepts.ideas)
    assert concepts.topic == articles[0].title
    assert concepts.ranking == [c.title for c in concepts.ideas]
    assert concepts.winner == "Idea 0"
    assert "NEWS HEADLINES from Melbourne" in gemini.text_prompts[0]


def test_concepts_require_articles():
    gemini = FakeGemini()
    with pytest.raises(DomainError) as exc:
        _studio(gemini).generate_cartoon_concepts([], "Melbourne")
    assert exc.value.code == CARTOON_ERROR
    assert gemini.text_prompts == []


def test_concept_failure_is_wrapped(articles):
    cause = TransportError("HTTP 500", 500)
    with pytest.raises(DomainError) as exc:
        _studio(FakeGemini(text=[cause])).generate_cartoon_concepts(articles, "Melbourne")
    assert exc.value.code == CARTOON_ERROR
    assert exc.value.__cause__ is cause


# ---------- script ----------

@pytest.mark.parametrize("n", [1, 2, 4, 6])
def test_script_has_requested_panels(articles, concept, n):
    gemini = FakeGemini(text=[text_envelope(_script_json(4))])
    script = _studio(gemini).generate_comic_prompt(concept, articles, n)
    assert len(script.panels) == n
    assert script.description == "Comic prompt for: Pigeon Parliament"
    assert script.newsContext == "; ".join(a.title for a in articles)


# ---------- image ----------

def test_image_uses_envelope_mime_and_caches(articles, concept, clock):
    gemini = FakeGemini(text=[text_envelope(_script_json(2))], vision=[image_envelope("QUJD", "image/jpeg")])
    studio = _studio(gemini, clock)

    image = studio.generate_cartoon_image(concept, articles, 2)
    assert image.mimeType == "image/jpeg"
    assert image.base64Data == "QUJD"
    assert "[V] [O] [T] [E]" in gemini.vision_prompts[0]

    assert studio.generate_cartoon_image(concept, articles, 2) == image
    assert len(gemini.vision_prompts) == 1
    assert studio.rate_limiter.remaining() == 1


def test_third_image_in_window_is_rate_limited(articles, clock):
    gemini = FakeGemini(text=[text_envelope(_script_json(1))] * 3, vision=[image_envelope()] * 3)
    studio = _studio(gemini, clock)
    for title in ("One", "Two"):
        studio.generate_cartoon_image(CartoonConcept(title=title), articles, 1)
        clock.advance(5)

    with pytest.raises(RateLimitError) as exc:
        studio.generate_cartoon_image(CartoonConcept(title="Three"), articles, 1)
    assert exc.value.retry_after == studio.rate_limiter.time_until_next() == 50
    assert exc.value.status_code == 429
    assert len(gemini.vision_prompts) == 2

    clock.advance(51)
    assert studio.generate_cartoon_image(CartoonConcept(title="Three"), articles, 1).base64Data


def test_failed_image_releases_slot(articles, concept):
    gemini = FakeGemini(text=[text_envelope(_script_json(1))], vision=[text_envelope("I drew you a pigeon")])
    studio = _studio(gemini)
    with pytest.raises(DomainError) as exc:
        studio.generate_cartoon_image(concept, articles, 1)

    assert exc.value.code == CARTOON_ERROR
    assert isinstance(exc.value.__cause__, MalformedResponseError)
    assert exc.value.__cause__.reason == "text_instead_of_image"
    assert studio.rate_limiter.remaining() == 2
    assert studio.image_cache.get_image(concept) is None


def test_image_state_sequence(articles, concept):
    events = []
    gemini = FakeGemini(text=[text_envelope(_script_json(1))], vision=[image_envelope()])
    studio = _studio(gemini, events=events)
    studio.generate_cartoon_image(concept, articles, 1)

    assert [s for p, s in events if p == "image"] == [
        CACHE_CHECK, RATE_LIMIT_CHECK, BUILDING_PROMPT, CALLING_API, PARSING, SUCCESS]
    assert [s for p, s in events if p == "script"][-1] == SUCCESS

    events.clear()
    studio.generate_cartoon_image(concept, articles, 1)
    assert events == [("image", CACHE_CHECK), ("image", SUCCESS)]


# ---------- humor & analysis ----------

@pytest.mark.parametrize("reply, expected", [
    (text_envelope("150"), 100),
    (text_envelope("-10"), 1),
    (text_envelope(""), 1),
    (text_envelope("very funny"), 50),
    (text_envelope("87"), 87),
    (TransportError("down"), 50),
])
def test_humor_score(reply, expected):
    assert _studio(FakeGemini(text=[reply])).generate_humor_score("Mayor stuck in lift", "Again") == expected


def test_batch_analysis_keeps_one_result_per_article(articles):
    many = articles * 2 + articles[:1]
    replies = [
        text_envelope(json.dumps([{"summary": "S1", "humorScore": 70}] * 3)),
        text_envelope(json.dumps([{"summary": "S2", "humorScore": 40}])),
        TransportError("down"),
    ]
    delays = []
    results = _studio(FakeGemini(text=replies), delays=delays).batch_analyze_articles(many)

    assert len(results) == 7
    assert [r.summary for r in results] == ["S1"] * 3 + ["S2", "", ""] + [""]
    assert results[-1].humorScore == 50
    assert delays == [1.0, 1.0]


def test_batch_analysis_unparseable_reply(articles):
    results = _studio(FakeGemini(text=[text_envelope("not valid JSON")])).batch_analyze_articles(articles[:2])
    assert [(r.summary, r.humorScore) for r in results] == [("", 50), ("", 50)]


def test_batch_analysis_accepts_plain_mappings():
    gemini = FakeGemini(text=[text_envelope('[{"summary": "ok", "humorScore": 12}]')])
    results = _studio(gemini).batch_analyze_articles([{"title": "A", "content": "body"}])
    assert results[0].humorScore == 12
    assert "Content excerpt: body..." in gemini.text_prompts[0]


# ---------- end to end ----------

def test_run_pipeline_writes_outputs(tmp_path):
    feed = {"articles": [{"title": "Pigeons seize town hall", "url": "https://www.theage.com.au/x",
                          "source": {"name": "The Age"}}]}
    news = NewsService(base_url="http://proxy/api/news", session=FakeSession(FakeResponse(200, feed)))
    gemini = FakeGemini(text=[text_envelope(_concepts_json(2)), text_envelope(_script_json(1))],
                        vision=[image_envelope(_png_b64())])

    manifest = run_pipeline(_studio(gemini), news, tmp_path / "run", location="Melbourne",
                            panel_count=1, concept_index=1)

    out = tmp_path / "run"
    assert manifest["concept"]["title"] == "Idea 1"
    assert manifest["articles"][0]["mainstreamRank"] == 1
    assert (out / "idea-1.png").exists()
    assert json.loads((out / "manifest.json").read_text())["image"]["file"] == "idea-1.png"
    assert "CONCEPT_PROMPT" in (out / "prompts_used.txt").read_text()


def test_slugify_and_parser():
    assert slugify("  Pigeon Parliament!! ") == "pigeon-parliament"
    assert slugify("!!!") == "item"
    args = build_parser().parse_args(["comic", "--location", "Melbourne", "--panels", "2"])
    assert (args.command, args.location, args.panels, args.all) == ("comic", "Melbourne", 2, False)


class SlowVision(FakeGemini):
    def __init__(self, clock, seconds, **kwargs):
        super().__init__(**kwargs)
        self.clock = clock
        self.seconds = seconds

    def call_vision_api(self, prompt):
        self.clock.advance(self.seconds)
        return super().call_vision_api(prompt)


def test_quota_window_counts_from_completed_renders(articles, clock):
    gemini = SlowVision(clock, 40, text=[text_envelope(_script_json(1))] * 3, vision=[image_envelope()] * 3)
    studio = _studio(gemini, clock)
    studio.generate_cartoon_image(CartoonConcept(title="One"), articles, 1)
    studio.generate_cartoon_image(CartoonConcept(title="Two"), articles, 1)

    # Renders finished 40 s and 80 s after the first request started
    clock.advance(1)
    assert studio.rate_limiter.remaining() == 0
    with pytest.raises(RateLimitError) as exc:
        studio.generate_cartoon_image(CartoonConcept(title="Three"), articles, 1)
    assert exc.value.retry_after == 19
