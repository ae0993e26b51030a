"""Plain-text extraction from note bodies.

Note bodies arrive as HTML fragments. Windows are embedded as plain text,
so markup and entity references are stripped before chunking.
"""
import re

_IMG_TAG = re.compile(r"<img[^>]*>")
_ANY_TAG = re.compile(r"<[^>]*>")
_WHITESPACE = re.compile(r"\s+")
_ENTITY = re.compile(r"&(?:[A-Za-z][A-Za-z0-9]*|#\d+|#[xX][0-9A-Fa-f]+);")
_MULTI_SPACE = re.compile(r"\s{2,}")

_ENTITIES = {
    "&nbsp;": " ",
    "&amp;": "&",
    "&lt;": "<",
    "&gt;": ">",
    "&quot;": '"',
}


def _replace_entity(match: re.Match) -> str:
    # Anything but the known few is dropped
    return _ENTITIES.get(match.group(0), "")


def normalize(raw: str) -> str:
    """Strip markup and entities from a note body.

    Entities are decoded in a single pass, so decoded text such as
    ``&amp;lt;`` becomes a literal ``&lt;`` and is never decoded again.
    A bare ``&`` that does not start an entity reference is kept.

    Args:
        raw: HTML body as emitted by the notes application

    Returns:
        Single-line plain text with whitespace collapsed
    """
    if not raw:
        return ""

    text = _IMG_TAG.sub("", raw)
    text = _ANY_TAG.sub("", text)
    text = _WHITESPACE.sub(" ", text)
    text = _ENTITY.sub(_replace_entity, text)
    text = _MULTI_SPACE.sub(" ", text)

    return text.strip()
