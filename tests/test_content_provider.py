from unittest.mock import Mock

import pytest
import requests

from nofus.services.content_provider import ContentProviderError, WikipediaClient


def _response(payload):
    response = Mock()
    response.raise_for_status.return_value = None
    response.json.return_value = payload
    return response


@pytest.fixture
def session():
    return Mock(spec=requests.Session)


def test_fetch_articles_maps_pages(session):
    session.get.return_value = _response(
        {
            "query": {
                "pages": [
                    {"pageid": 42, "title": "Ornithorynque", "extract": " Mammifère. ", "fullurl": "https://w/O"},
                    {"pageid": 7, "title": "Zèbre", "extract": "Équidé."},
                    {"title": "Sans id"},
                ]
            }
        }
    )
    client = WikipediaClient("https://example.org/api.php", session=session)

    articles = client.fetch_articles(3)

    assert [(a.id, a.title) for a in articles] == [("42", "Ornithorynque"), ("7", "Zèbre")]
    assert articles[0].extract == "Mammifère."
    assert articles[0].url == "https://w/O"
    assert articles[0].summary == ""
    params = session.get.call_args.kwargs["params"]
    assert params["generator"] == "random"
    assert params["grnlimit"] == 3
    assert params["grnnamespace"] == 0


def test_legacy_pages_mapping_is_accepted(session):
    session.get.return_value = _response({"query": {"pages": {"42": {"pageid": 42, "title": "X"}}}})
    assert WikipediaClient(session=session).fetch_articles(1)[0].id == "42"


def test_transport_error_is_wrapped(session):
    session.get.side_effect = requests.ConnectionError("boom")
    with pytest.raises(ContentProviderError):
        WikipediaClient(session=session).fetch_articles(6)


def test_timeout_is_wrapped(session):
    session.get.side_effect = requests.Timeout("slow")
    with pytest.raises(ContentProviderError):
        WikipediaClient(session=session).fetch_articles(6)


def test_invalid_json_is_wrapped(session):
    response = _response(None)
    response.json.side_effect = ValueError("not json")
    session.get.return_value = response
    with pytest.raises(ContentProviderError):
        WikipediaClient(session=session).fetch_articles(6)


def test_empty_result_is_an_error(session):
    session.get.return_value = _response({"batchcomplete": True})
    with pytest.raises(ContentProviderError):
        WikipediaClient(session=session).fetch_articles(6)


def test_default_session_sends_user_agent():
    client = WikipediaClient(user_agent="nofus-tests/1.0")
    assert client.session.headers["User-Agent"] == "nofus-tests/1.0"
