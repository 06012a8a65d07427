"""
Optional vision call-out that suggests metadata for an image.

The reply is a JSON object keyed by field path. Only keys naming a leaf of the template are used,
and each value is coerced to the field's kind; anything else is logged and dropped.
"""
from __future__ import annotations

import base64
import json
import logging
import mimetypes
import re
from dataclasses import dataclass
from typing import Any, Iterable, Optional, Protocol, Sequence

import httpx

from mediameta.core.batch import BatchResult, run
from mediameta.core.config import DEFAULT_VISION_MODEL
from mediameta.schema import FieldDefinition, FieldKind, FieldValueError, coerce_value, leaf_paths
from mediameta.schema.metadata import flatten

log = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
MAX_TOKENS = 300

_FENCED = re.compile(r"```json\s*(\{.*\})\s*```", re.DOTALL)
_BRACED = re.compile(r"\{.*\}", re.DOTALL)


class VisionError(RuntimeError): ...


@dataclass(frozen=True)
class FieldDescriptor:
    path: str
    kind: FieldKind
    options: tuple[str, ...] = ()

    def describe(self) -> str:
        text = f"{self.path} ({self.kind.value})"
        if self.options:
            text += f" one of [{', '.join(self.options)}]"
        return text


def describe_fields(fields: Sequence[FieldDefinition]) -> list[FieldDescriptor]:
    return [
        FieldDescriptor(path, f.kind, f.options if f.kind is FieldKind.select else ())
        for path, f in leaf_paths(fields)
    ]


def extract_json(content: str) -> dict[str, Any]:
    """ Pull the JSON object out of a chat reply: a ```json fence first, else the outermost {...} span. """
    match = _FENCED.search(content) or _BRACED.search(content)
    if match is None:
        raise VisionError("No JSON found in vision response")
    text = match.group(1) if match.re is _FENCED else match.group(0)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise VisionError(f"Failed to parse vision response: {content}") from e
    if not isinstance(data, dict):
        raise VisionError("Vision response JSON is not an object")
    return data


def _data_url(data: bytes, mime: str) -> str:
    return f"data:{mime};base64,{base64.b64encode(data).decode('ascii')}"


class VisionClient:
    """
    Chat-completions client. The API key only lives on this object; it is never written to settings.
    Pass ``transport`` to substitute an ``httpx.MockTransport`` in tests.
    """

    def __init__(self, api_key: str, model: str = DEFAULT_VISION_MODEL, *, base_url: str = DEFAULT_BASE_URL,
                 timeout: float = 60.0, transport: Optional[httpx.BaseTransport] = None):
        if not api_key:
            raise VisionError("A vision API key is required")
        self.model = model
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            timeout=timeout,
            transport=transport,
            headers={"Authorization": f"Bearer {api_key}", "Content-Type": "application/json"},
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "VisionClient":
        return self

    def __exit__(self, *exc) -> None:
        self.close()

    def _payload(self, data: bytes, mime: str, descriptors: Sequence[FieldDescriptor]) -> dict[str, Any]:
        wanted = ", ".join(d.describe() for d in descriptors)
        prompt = (
            f"Analyze this image and provide values for the following fields: {wanted}. "
            "Return ONLY a JSON object with the field names as keys and appropriate values "
            "based on the image content."
        )
        return {
            "model": self.model,
            "messages": [{
                "role": "user",
                "content": [
                    {"type": "text", "text": prompt},
                    {"type": "image_url", "image_url": {"url": _data_url(data, mime)}},
                ],
            }],
            "max_tokens": MAX_TOKENS,
        }

    def analyze(self, data: bytes, mime: str, fields: Sequence[FieldDefinition]) -> dict[str, Any]:
        """ Ask the model for values; returns the raw (flattened) key/value pairs it sent back. """
        descriptors = describe_fields(fields)
        if not descriptors:
            return {}
        try:
            r = self._client.post("/chat/completions", json=self._payload(data, mime, descriptors))
            r.raise_for_status()
            out = r.json()
        except httpx.HTTPError as e:
            raise VisionError(f"Vision request failed: {e}") from e
        except ValueError as e:
            raise VisionError("Vision response is not JSON") from e

        content = ((((out.get("choices") or [{}])[0]).get("message") or {}).get("content") or "").strip()
        if not content:
            raise VisionError("No response from vision model")
        return flatten(extract_json(content))


class Annotatable(Protocol):
    file_name: str
    data: bytes
    metadata: dict[str, Any]
    content_type: Optional[str]


def suggested_values(fields: Sequence[FieldDefinition], raw: dict[str, Any]) -> dict[str, Any]:
    """ Keep only values for known leaves that coerce to their field kind. """
    leaves = dict(leaf_paths(fields))
    out: dict[str, Any] = {}
    for path, value in raw.items():
        field = leaves.get(path)
        if field is None:
            log.warning("Vision returned unknown field %r; ignored", path)
            continue
        try:
            out[path] = coerce_value(field, value, path)
        except FieldValueError as e:
            log.warning("Vision value ignored: %s", e)
    return out


def annotate_batch(client: VisionClient, items: Iterable[Annotatable],
                   fields: Sequence[FieldDefinition]) -> BatchResult[Annotatable]:
    """
    Pre-fill each item's metadata, one image at a time. Suggestions are merged over the values
    already there; each item gets a new metadata dict. Failures are recorded per item.
    """
    def _one(item: Annotatable) -> Annotatable:
        mime = item.content_type or mimetypes.guess_type(item.file_name)[0] or "image/png"
        suggestions = suggested_values(fields, client.analyze(item.data, mime, fields))
        item.metadata = {**item.metadata, **suggestions}
        return item

    return run(items, _one, label="annotation")
