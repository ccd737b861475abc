from __future__ import annotations

import base64
import binascii
import json
import re
from typing import Dict, List, Optional
from urllib.parse import unquote, urlsplit

from loguru import logger

from ..domain.canonical_key import VMESS_PREFIX


NODE_SCHEMES = ("ss://", "ssr://", "vmess://", "vless://", "trojan://", "hysteria://", "hysteria2://", "hy2://", "tuic://")
_BASE64_BLOB = re.compile(r"[A-Za-z0-9+/=_-]+")


def _pad(value: str) -> str:
    padding = (-len(value)) % 4
    return value + ("=" * padding)


def _maybe_decode_base64_blob(text: str) -> str:
    """Subscription exports are often one base64 blob of newline separated links."""
    compact = "".join(text.split())
    if not compact or not _BASE64_BLOB.fullmatch(compact):
        return text
    try:
        decoded = base64.urlsafe_b64decode(_pad(compact.replace("+", "-").replace("/", "_")))
    except (binascii.Error, ValueError):
        return text
    decoded_text = decoded.decode("utf-8", errors="ignore")
    if any(scheme in decoded_text for scheme in NODE_SCHEMES):
        return decoded_text
    return text


def _vmess_label(uri: str) -> Optional[str]:
    payload = "".join(uri[len(VMESS_PREFIX):].split("#", 1)[0].split())
    try:
        data = json.loads(base64.b64decode(_pad(payload)).decode("utf-8"))
    except (binascii.Error, UnicodeDecodeError, ValueError):
        return None
    if isinstance(data, dict):
        label = data.get("ps") or data.get("remark")
        return str(label) if label else None
    return None


def _host(uri: str) -> Optional[str]:
    try:
        return urlsplit(uri).hostname
    except ValueError:
        return None


def node_label(uri: str) -> str:
    if uri.startswith(VMESS_PREFIX):
        label = _vmess_label(uri)
        if label:
            return label
    if "#" in uri:
        fragment = unquote(uri.split("#", 1)[1]).strip()
        if fragment:
            return fragment
    return _host(uri) or uri.split("://", 1)[0]


def parse_node_lines(text: str) -> List[Dict[str, str]]:
    nodes: List[Dict[str, str]] = []
    for raw in _maybe_decode_base64_blob(text).splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        if not line.startswith(NODE_SCHEMES):
            logger.debug("Skipping unsupported node line: {}", line[:60])
            continue
        nodes.append({"name": node_label(line), "url": line})
    return nodes


def parse_subscription_lines(text: str) -> List[Dict[str, str]]:
    """Accept either bare URLs or ``name,url`` pairs, one per line."""
    subs: List[Dict[str, str]] = []
    for raw in text.splitlines():
        line = raw.strip()
        if not line or line.startswith("#"):
            continue
        name, url = "", line
        if "," in line and "://" not in line.split(",", 1)[0]:
            name, url = (part.strip() for part in line.split(",", 1))
        if not url:
            continue
        subs.append({"name": name or _host(url) or url, "url": url})
    return subs
