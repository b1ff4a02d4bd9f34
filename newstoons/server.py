# server.py
import json
import time
import queue
import logging
import threading
from pathlib import Path
from typing import Any, Dict, Generator, List, Optional

from flask import Flask, Response, jsonify, request, send_file
from pydantic import ValidationError

from .config import DEBUG, DEFAULT_NEWS_LIMIT, OUTPUT_DIR
from .errors import DomainError, NewstoonsError, error_payload
from .main import (CartoonStudio, PromptLogger, default_news_service, default_studio,
                   run_pipeline, slugify)
from .models import CartoonConcept, NewsArticle
from .news import NewsService

logger = logging.getLogger(__name__)


class RunState:
    def __init__(self):
        self.current_run_dir: Optional[Path] = None
        self.events: "queue.Queue[Dict[str, Any]]" = queue.Queue()
        self.thread: Optional[threading.Thread] = None


def _flag(value: Optional[str], default: bool = True) -> bool:
    if value is None:
        return default
    return value.strip().lower() not in {"0", "false", "no", "off"}


def _int_arg(value: Any, name: str, default: int) -> int:
    if value is None or value == "":
        return default
    try:
        return int(value)
    except (TypeError, ValueError):
        raise DomainError.validation(f"{name} must be an integer", **{name: value}) from None


def _body() -> Dict[str, Any]:
    data = request.get_json(force=True, silent=True)
    if not isinstance(data, dict):
        raise DomainError.validation("Request body must be a JSON object")
    return data


def _articles(data: Dict[str, Any]) -> List[NewsArticle]:
    raw = data.get("articles") or []
    if not isinstance(raw, list):
        raise DomainError.validation("articles must be a list")
    return [NewsArticle.model_validate(a) for a in raw]


def _concept(data: Dict[str, Any]) -> CartoonConcept:
    raw = data.get("concept")
    if not isinstance(raw, dict):
        raise DomainError.validation("concept is required")
    return CartoonConcept.model_validate(raw)


def safe_path(root: Path, rel: str) -> Optional[Path]:
    p = (root / rel).resolve()
    if root.resolve() in p.parents or p == root.resolve():
        return p if p.exists() else None
    return None


def create_app(studio: Optional[CartoonStudio] = None, news: Optional[NewsService] = None,
               output_dir: Path = OUTPUT_DIR, debug: bool = DEBUG) -> Flask:
    app = Flask(__name__, static_folder=None)
    state = RunState()
    studio = studio or default_studio()
    news = news or default_news_service()
    app.config["STUDIO"] = studio
    app.config["NEWS"] = news
    app.config["RUN_STATE"] = state

    @app.errorhandler(NewstoonsError)
    def handle_error(e: NewstoonsError):
        payload = error_payload(e, debug)
        if not isinstance(e, DomainError) or e.status_code >= 500:
            logger.error("Request failed: %s", e, exc_info=e)
        return jsonify({"error": payload}), payload["statusCode"]

    @app.errorhandler(ValidationError)
    def handle_validation(e: ValidationError):
        errors = e.errors(include_url=False, include_context=False, include_input=False)
        return handle_error(DomainError.validation("Invalid request body", errors=errors))

    # ---------- news ----------

    @app.route("/api/news/location")
    def api_news_location():
        feed = news.fetch_news_by_location(
            request.args.get("location", ""),
            _int_arg(request.args.get("limit"), "limit", DEFAULT_NEWS_LIMIT),
            _flag(request.args.get("onlyAuthoritative")))
        return jsonify(feed.model_dump())

    @app.route("/api/news/keyword")
    def api_news_keyword():
        feed = news.fetch_news_by_keyword(
            request.args.get("keyword", ""),
            _int_arg(request.args.get("limit"), "limit", DEFAULT_NEWS_LIMIT),
            _flag(request.args.get("onlyAuthoritative")))
        return jsonify(feed.model_dump())

    # ---------- cartoons ----------

    @app.route("/api/concepts", methods=["POST"])
    def api_concepts():
        data = _body()
        concepts = studio.generate_cartoon_concepts(_articles(data), str(data.get("location") or ""))
        return jsonify(concepts.model_dump())

    @app.route("/api/script", methods=["POST"])
    def api_script():
        data = _body()
        script = studio.generate_comic_prompt(
            _concept(data), _articles(data), _int_arg(data.get("panelCount"), "panelCount", 4))
        return jsonify(script.model_dump())

    @app.route("/api/image", methods=["POST"])
    def api_image():
        data = _body()
        image = studio.generate_cartoon_image(
            _concept(data), _articles(data), _int_arg(data.get("panelCount"), "panelCount", 4))
        return jsonify(image.model_dump())

    @app.route("/api/humor", methods=["POST"])
    def api_humor():
        data = _body()
        title = str(data.get("title") or "").strip()
        if not title:
            raise DomainError.validation("title is required")
        return jsonify({"humorScore": studio.generate_humor_score(title, data.get("description"))})

    @app.route("/api/analyze", methods=["POST"])
    def api_analyze():
        results = studio.batch_analyze_articles(_articles(_body()))
        return jsonify({"results": [r.model_dump() for r in results]})

    @app.route("/api/rate_limit")
    def api_rate_limit():
        limiter = studio.rate_limiter
        return jsonify({
            "canGenerate": limiter.can_generate(),
            "remaining": limiter.remaining(),
            "retryAfter": limiter.time_until_next(),
        })

    @app.route("/api/cache/clear", methods=["POST"])
    def api_cache_clear():
        studio.clear_image_cache()
        news.clear_cache()
        return jsonify({"success": True})

    # ---------- background comic runs ----------

    def pipeline_worker(run_dir: Path, events: "queue.Queue[Dict[str, Any]]", params: Dict[str, Any]):
        def on_state(pipeline: str, step: str) -> None:
            events.put({"type": "state", "pipeline": pipeline, "state": step})

        run_studio = CartoonStudio(studio.client, studio.image_cache, studio.rate_limiter,
                                   prompt_log=PromptLogger(run_dir / "prompts_used.txt"),
                                   on_state=on_state)
        try:
            events.put({"type": "start", "run": run_dir.name})
            run_pipeline(run_studio, news, run_dir, **params)
            events.put({"type": "done", "run": run_dir.name})
        except Exception as e:
            logger.error("Run %s failed: %s", run_dir.name, e, exc_info=e)
            events.put({"type": "error", "error": error_payload(e, debug)})

    @app.route("/api/start", methods=["POST"])
    def api_start():
        data = _body()
        location = str(data.get("location") or "").strip() or None
        keyword = str(data.get("keyword") or "").strip() or None
        if not location and not keyword:
            raise DomainError.validation("location or keyword is required")

        if state.thread and state.thread.is_alive():
            return jsonify({"error": "A run is already in progress"}), 409

        slug = slugify(location or keyword, "news")
        run_id = f"{slug}-{int(time.time())}"
        run_dir = output_dir / run_id
        run_dir.mkdir(parents=True, exist_ok=True)
        state.current_run_dir = run_dir
        state.events = queue.Queue()

        params = {
            "location": location,
            "keyword": keyword,
            "panel_count": _int_arg(data.get("panelCount"), "panelCount", 4),
            "concept_index": _int_arg(data.get("conceptIndex"), "conceptIndex", 0),
            "limit": _int_arg(data.get("limit"), "limit", DEFAULT_NEWS_LIMIT),
        }
        t = threading.Thread(target=pipeline_worker, args=(run_dir, state.events, params), daemon=True)
        t.start()
        state.thread = t
        return jsonify({"run": run_id})

    @app.route("/api/stream")
    def api_stream() -> Response:
        events = state.events

        def gen() -> Generator[str, None, None]:
            yield "event: ping\n" "data: {}\n\n"
            while True:
                try:
                    evt = events.get(timeout=60)
                except queue.Empty:
                    yield "event: ping\n" "data: {}\n\n"
                    continue
                yield f"data: {json.dumps(evt)}\n\n"
                if evt.get("type") in {"done", "error"}:
                    break
        return Response(gen(), mimetype="text/event-stream")

    @app.route("/api/manifest")
    def api_manifest():
        run = request.args.get("run")
        if not run:
            return jsonify({"error": "Missing run"}), 400
        run_dir = safe_path(output_dir, run)
        mf = run_dir / "manifest.json" if run_dir else None
        if not mf or not mf.exists():
            return jsonify({"manifest": None})
        return jsonify(json.loads(mf.read_text(encoding="utf-8")))

    @app.route("/api/file")
    def api_file():
        run = request.args.get("run")
        rel = request.args.get("path")
        if not run or not rel:
            return "Missing run or path", 400
        run_dir = safe_path(output_dir, run)
        p = safe_path(run_dir, rel) if run_dir else None
        if not p:
            return "Not found", 404
        if p.suffix.lower() in {".png", ".jpg", ".jpeg", ".webp"}:
            return send_file(str(p))
        return Response(p.read_text(encoding="utf-8"), mimetype="text/plain")

    return app


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    create_app().run(host="127.0.0.1", port=5001, debug=DEBUG, threaded=True)
