import pytest
import requests

from conftest import FakeResponse, FakeSession
from newstoons.cache import TTLCache
from newstoons.errors import NEWS_ERROR, DomainError
from newstoons.news import (NewsService, add_authority_ranking, authority_score, parse_news_response,
                            source_name)


def _feed(urls):
    return {"articles": [
        {"title": f"Story {i}", "url": url, "source": {"name": f"Outlet {i}"}, "publishedAt": "2025-01-01T00:00:00Z"}
        for i, url in enumerate(urls, start=1)
    ]}


def _service(*responses, clock=None):
    delays = []
    session = FakeSession(*responses)
    cache = TTLCache(300, clock) if clock else TTLCache(300)
    service = NewsService(base_url="http://proxy/api/news", session=session, cache=cache, sleep=delays.append)
    return service, session, delays


def test_authority_score_decays_with_floor():
    scores = [authority_score(p) for p in range(1, 30)]
    assert scores[:3] == [100, 80, 64]
    assert all(a >= b for a, b in zip(scores, scores[1:]))
    assert min(scores) == 10


def test_source_name_variants():
    assert source_name({"name": "The Age"}) == "The Age"
    assert source_name({"name": {"_": "Herald Sun"}}) == "Herald Sun"
    assert source_name("ABC") == "ABC"
    assert source_name(None) == "Unknown"
    assert source_name({}) == "Unknown"


def test_parse_news_response_skips_junk():
    data = {"articles": [{"title": "A", "url": "u", "source": {"name": {"_": "X"}, "url": "https://x"}}, "junk"]}
    articles = parse_news_response(data)
    assert len(articles) == 1
    assert articles[0].source.name == "X"
    assert articles[0].source.url == "https://x"
    assert articles[0].publishedAt
    assert parse_news_response({"articles": "nope"}) == []


def test_ranking_marks_top_five():
    articles = parse_news_response(_feed([f"https://e.com/{i}" for i in range(8)]))
    ranked = add_authority_ranking(articles, 8, True)
    assert [a.rankPosition for a in ranked] == list(range(1, 9))
    assert [a.isAuthoritative for a in ranked] == [True] * 5 + [False] * 3
    assert ranked[0].authorityScore == 100


def test_location_fetch_over_fetches_and_ranks(clock):
    feed = _feed(["https://www.theage.com.au/a", "https://blog.example.com/b", "https://www.heraldsun.com.au/c"])
    service, session, _ = _service(FakeResponse(200, feed), clock=clock)

    response = service.fetch_news_by_location("Melbourne", limit=2)
    assert session.calls[0]["url"] == "http://proxy/api/news/search"
    assert session.calls[0]["params"] == {"q": "Melbourne", "max": "20", "scoring": "r"}
    assert response.totalArticles == 2
    assert response.location == "Melbourne"
    assert [a.mainstreamRank for a in response.articles] == [1, None]


def test_keyword_fetch_without_authority_filter_requests_limit():
    service, session, _ = _service(FakeResponse(200, _feed(["https://e.com/1"])))
    response = service.fetch_news_by_keyword("pigeons", limit=3, only_authoritative=False)
    assert session.calls[0]["params"]["max"] == "3"
    assert response.location is None
    assert response.articles[0].mainstreamRank is None


def test_cache_hit_and_expiry(clock):
    service, session, _ = _service(FakeResponse(200, _feed(["https://e.com/1"])),
                                   FakeResponse(200, _feed(["https://e.com/2"])), clock=clock)
    first = service.fetch_news_by_location("Sydney")
    clock.advance(299)
    assert service.fetch_news_by_location("Sydney").articles == first.articles
    assert len(session.calls) == 1

    clock.advance(1)
    again = service.fetch_news_by_location("Sydney")
    assert len(session.calls) == 2
    assert again.articles[0].url == "https://e.com/2"


def test_location_and_keyword_keys_are_disjoint():
    service, session, _ = _service(FakeResponse(200, _feed(["https://e.com/1"])),
                                   FakeResponse(200, _feed(["https://e.com/2"])))
    service.fetch_news_by_location("Perth")
    service.fetch_news_by_keyword("Perth")
    assert len(session.calls) == 2


def test_retries_then_raises_news_error():
    service, session, delays = _service(*[FakeResponse(500, None, "Server Error") for _ in range(4)])
    with pytest.raises(DomainError) as exc:
        service.fetch_news_by_keyword("floods")
    assert exc.value.code == NEWS_ERROR
    assert exc.value.status_code == 400
    assert len(session.calls) == 4
    assert delays == [1.0, 2.0, 4.0]


def test_recovers_from_network_error():
    service, session, delays = _service(requests.Timeout("slow"), FakeResponse(200, _feed(["https://e.com/1"])))
    assert service.fetch_news_by_keyword("floods").totalArticles == 1
    assert delays == [1.0]


@pytest.mark.parametrize("query", ["", "   "])
def test_blank_query_is_rejected(query):
    service, session, _ = _service()
    with pytest.raises(DomainError):
        service.fetch_news_by_location(query)
    with pytest.raises(DomainError):
        service.fetch_news_by_keyword(query)
    assert session.calls == []


def test_fetch_article_content():
    service, session, _ = _service(FakeResponse(200, {"content": "Full text"}))
    assert service.fetch_article_content("https://e.com/1") == "Full text"
    assert session.calls[0]["url"] == "http://proxy/api/article/content"
    assert session.calls[0]["params"] == {"url": "https://e.com/1"}


def test_fetch_article_content_failure():
    service, _, _ = _service(FakeResponse(404, None, "Not Found"))
    with pytest.raises(DomainError) as exc:
        service.fetch_article_content("https://e.com/1")
    assert exc.value.code == NEWS_ERROR


def test_cached_articles_are_not_shared_with_callers():
    service, session, _ = _service(FakeResponse(200, _feed(["https://e.com/1"])))
    first = service.fetch_news_by_keyword("pigeons")
    first.articles[0].title = "Edited by caller"
    first.articles[0].source.name = "Edited"

    again = service.fetch_news_by_keyword("pigeons")
    assert len(session.calls) == 1
    assert again.articles[0].title == "Story 1"
    assert again.articles[0].source.name == "Outlet 1"
