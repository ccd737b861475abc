from __future__ import annotations

import base64
import binascii
import json
import re

from loguru import logger


VMESS_PREFIX = "vmess://"
_LABEL_FIELDS = ("ps", "remark")
_WHITESPACE = re.compile(r"\s")


def _pad(value: str) -> str:
    padding = (-len(value)) % 4
    return value + ("=" * padding)


def _vmess_key(uri: str) -> str:
    payload = _WHITESPACE.sub("", uri[len(VMESS_PREFIX):])
    decoded = base64.b64decode(_pad(payload), validate=True).decode("utf-8")
    config = json.loads(_WHITESPACE.sub("", decoded))
    if not isinstance(config, dict):
        raise ValueError("vmess payload is not a JSON object")
    for label in _LABEL_FIELDS:
        config.pop(label, None)
    ordered = {key: config[key] for key in sorted(config)}
    return VMESS_PREFIX + json.dumps(ordered, separators=(",", ":"), ensure_ascii=False)


def canonical_key(uri: str) -> str:
    """Identity of a proxy URI for duplicate detection; display labels are ignored.

    Never raises: an undecodable vmess payload is its own key.
    """
    if uri.startswith(VMESS_PREFIX):
        try:
            return _vmess_key(uri)
        except (binascii.Error, UnicodeDecodeError, ValueError, RecursionError) as exc:
            logger.warning("Could not canonicalize node uri {!r}: {}", uri, exc)
            return uri
    return uri.split("#", 1)[0]
