import json

import httpx
import pytest

from mediameta.db.services import PendingUpload
from mediameta.vision import VisionClient, VisionError, annotate_batch, describe_fields, extract_json


def _reply(content: str, status: int = 200):
    def handler(request: httpx.Request) -> httpx.Response:
        handler.requests.append(request)
        return httpx.Response(status, json={"choices": [{"message": {"content": content}}]})

    handler.requests = []
    return handler


@pytest.mark.parametrize("content, expected", [
    ('```json\n{"weight": 12}\n```', {"weight": 12}),
    ('Sure! {"specs": {"color": "red"}} Hope that helps.', {"specs": {"color": "red"}}),
])
def test_extract_json(content, expected):
    assert extract_json(content) == expected


@pytest.mark.parametrize("content", ["no json here", "{broken"])
def test_extract_json_failures(content):
    with pytest.raises(VisionError):
        extract_json(content)


def test_describe_fields(product_fields):
    assert [d.describe() for d in describe_fields(product_fields)] == [
        "weight (number)",
        "specs.color (select) one of [red, blue]",
        "specs.notes (text)",
    ]


def test_request_shape(product_fields):
    handler = _reply('{"weight": 3}')
    client = VisionClient("sk-test", transport=httpx.MockTransport(handler))

    assert client.analyze(b"img", "image/png", product_fields) == {"weight": 3}

    (request,) = handler.requests
    assert request.url.path.endswith("/chat/completions")
    assert request.headers["Authorization"] == "Bearer sk-test"
    body = json.loads(request.content)
    assert body["model"] == "gpt-4o-mini"
    assert body["max_tokens"] == 300
    text, image = body["messages"][0]["content"]
    assert "weight (number)" in text["text"]
    assert image["image_url"]["url"].startswith("data:image/png;base64,")


def test_http_error_becomes_vision_error(product_fields):
    client = VisionClient("sk-test", transport=httpx.MockTransport(_reply("", status=500)))
    with pytest.raises(VisionError):
        client.analyze(b"img", "image/png", product_fields)


def test_key_required():
    with pytest.raises(VisionError):
        VisionClient("")


def test_annotate_batch_merges_known_fields(product_fields, caplog):
    content = '```json\n{"weight": "7.5", "specs": {"color": "green", "notes": "shiny"}, "price": 4}\n```'
    client = VisionClient("sk-test", transport=httpx.MockTransport(_reply(content)))
    item = PendingUpload("a.png", b"img", {"weight": 1, "specs.color": "red"})
    original = item.metadata

    result = annotate_batch(client, [item], product_fields)

    assert result.ok
    # green is not an option and price is not a field: both dropped
    assert item.metadata == {"weight": 7.5, "specs.color": "red", "specs.notes": "shiny"}
    assert original == {"weight": 1, "specs.color": "red"}
    assert "price" in caplog.text


def test_annotate_batch_records_failures(product_fields):
    calls = iter([_reply("nothing useful"), _reply('{"weight": 2}')])

    def handler(request):
        return next(calls)(request)

    client = VisionClient("sk-test", transport=httpx.MockTransport(handler))
    first, second = PendingUpload("a.png", b"1"), PendingUpload("b.png", b"2")

    result = annotate_batch(client, [first, second], product_fields)

    assert [f.item for f in result.failed] == [first]
    assert result.succeeded == [second]
    assert second.metadata == {"weight": 2}
    assert first.metadata == {}
