"""Node and connection builders for n8n workflow JSON.

Everything here returns plain dicts ready to drop into ``WorkflowGraph``.
Scripts and expressions embedded in parameters are just strings.
"""
from __future__ import annotations

import json
import re
import uuid
from typing import Any

CLAUDE_URL = "https://api.anthropic.com/v1/messages"
ANTHROPIC_VERSION = "2023-06-01"
CLICKUP_API = "https://api.clickup.com/api/v2"

_MODEL_RE = re.compile(r'("model"\s*:\s*")claude-[^"]+(")')
_MAX_TOKENS_RE = re.compile(r'("max_tokens"\s*:\s*)\d+')


# ──────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────
def new_id() -> str:
    return str(uuid.uuid4())


def node(nid: str | None, name: str, ntype: str, params: dict, pos: list[int],
         version: float = 1, creds: dict | None = None) -> dict:
    """Build a node dict. ``ntype`` without a package prefix means n8n-nodes-base."""
    n: dict[str, Any] = {
        "parameters": params,
        "id": nid or new_id(),
        "name": name,
        "type": ntype if "." in ntype else f"n8n-nodes-base.{ntype}",
        "typeVersion": version,
        "position": pos,
    }
    if creds:
        n["credentials"] = creds
    return n


def conn(src: str, *targets: str | tuple[str, ...]) -> dict:
    """Build a connection entry. Each target is one output port; a tuple fans out."""
    branches: list[list[dict]] = []
    for t in targets:
        names = t if isinstance(t, tuple) else (t,)
        branches.append([{"node": n, "type": "main", "index": 0} for n in names])
    return {src: {"main": branches}}


def midpoint(a: dict, b: dict) -> list[int]:
    """Position halfway between two nodes horizontally, on ``a``'s row."""
    ax, ay = a.get("position") or [0, 0]
    bx, _ = b.get("position") or [0, 0]
    return [round((ax + bx) / 2), ay]


def credential(ctype: str, cid: str, name: str) -> dict:
    return {ctype: {"id": cid, "name": name}}


# ──────────────────────────────────────────────────
# Node types
# ──────────────────────────────────────────────────
def code_node(nid: str | None, name: str, js: str, pos: list[int],
              per_item: bool = False) -> dict:
    params: dict[str, Any] = {"jsCode": js}
    if per_item:
        params = {"mode": "runOnceForEachItem", "jsCode": js}
    return node(nid, name, "code", params, pos, version=2)


def http_request_node(nid: str | None, name: str, method: str, url: str, pos: list[int],
                      headers: list[dict] | None = None, body: str | None = None,
                      creds: dict | None = None, options: dict | None = None) -> dict:
    """HTTP Request v4.2. A ``body`` is sent raw as application/json."""
    params: dict[str, Any] = {"method": method, "url": url}
    if headers:
        params["sendHeaders"] = True
        params["headerParameters"] = {"parameters": headers}
    if body is not None:
        params.update({
            "sendBody": True,
            "contentType": "raw",
            "rawContentType": "application/json",
            "body": body,
        })
    params["options"] = options or {}
    return node(nid, name, "httpRequest", params, pos, version=4.2, creds=creds)


def webhook_node(nid: str | None, name: str, path: str, pos: list[int],
                 method: str = "POST", response_mode: str = "onReceived",
                 **extra_params: Any) -> dict:
    """Webhook v2 served at ``/webhook/<path>``."""
    n = node(nid, name, "webhook", {
        "httpMethod": method,
        "path": path,
        "responseMode": response_mode,
        **extra_params,
        "options": {},
    }, pos, version=2)
    n["webhookId"] = path
    return n


def manual_trigger_node(nid: str | None, name: str, pos: list[int]) -> dict:
    return node(nid, name, "manualTrigger", {}, pos)


def schedule_params(cron: str) -> dict:
    return {"rule": {"interval": [{"field": "cronExpression", "expression": cron}]}}


def if_node(nid: str | None, name: str, left: str, pos: list[int],
            operation: str = "equals", right: Any = "", value_type: str = "string") -> dict:
    """IF v2 with a single condition. Output 0 is true, output 1 is false."""
    condition: dict[str, Any] = {
        "id": new_id(),
        "leftValue": left,
        "rightValue": right,
        "operator": {"type": value_type, "operation": operation},
    }
    if operation in ("true", "false", "exists", "notExists", "empty", "notEmpty"):
        condition["operator"]["singleValue"] = True
    return node(nid, name, "if", {
        "conditions": {
            "options": {"caseSensitive": True, "leftValue": "", "typeValidation": "strict"},
            "conditions": [condition],
            "combinator": "and",
        },
    }, pos, version=2)


def respond_node(nid: str | None, name: str, body_expr: str, pos: list[int]) -> dict:
    return node(nid, name, "respondToWebhook", {
        "respondWith": "json",
        "responseBody": body_expr,
        "options": {},
    }, pos, version=1.1)


def move_binary_to_json_node(nid: str | None, name: str, pos: list[int],
                             source_key: str = "data",
                             destination_key: str = "pdfBase64") -> dict:
    """Read a binary property (memory or filesystem mode) into a base64 JSON field."""
    return node(nid, name, "moveBinaryData", {
        "mode": "binaryToJson",
        "setAllData": False,
        "sourceKey": source_key,
        "destinationKey": destination_key,
        "options": {"encoding": "base64", "keepSource": True},
    }, pos)


# ──────────────────────────────────────────────────
# Embedded request bodies
# ──────────────────────────────────────────────────
def claude_headers(api_key_expr: str = "={{ $env.ANTHROPIC_API_KEY }}") -> list[dict]:
    return [
        {"name": "x-api-key", "value": api_key_expr},
        {"name": "anthropic-version", "value": ANTHROPIC_VERSION},
        {"name": "content-type", "value": "application/json"},
    ]


def clickup_headers(api_key_expr: str = "={{ $env.CLICKUP_API_KEY }}") -> list[dict]:
    return [
        {"name": "Authorization", "value": api_key_expr},
        {"name": "Content-Type", "value": "application/json"},
    ]


def claude_messages_body(model: str, max_tokens: int, prompt_expr: str,
                         pdf_expr: str | None = None) -> str:
    """n8n expression that evaluates to an Anthropic Messages request.

    ``prompt_expr`` and ``pdf_expr`` are JavaScript expressions evaluated
    inside n8n (e.g. ``$json.masterPrompt``). With ``pdf_expr`` the user
    message carries a base64 PDF document block before the text block.
    """
    content = []
    if pdf_expr:
        content += [
            "        {",
            '          "type": "document",',
            '          "source": {',
            '            "type": "base64",',
            '            "media_type": "application/pdf",',
            f'            "data": {pdf_expr}',
            "          }",
            "        },",
        ]
    content += [
        "        {",
        '          "type": "text",',
        f'          "text": {prompt_expr}',
        "        }",
    ]
    return "\n".join([
        "={{ JSON.stringify({",
        f'  "model": {json.dumps(model)},',
        f'  "max_tokens": {int(max_tokens)},',
        '  "messages": [',
        "    {",
        '      "role": "user",',
        '      "content": [',
        *content,
        "      ]",
        "    }",
        "  ]",
        "}) }}",
    ])


def replace_claude_model(text: str, model: str, max_tokens: int | None = None) -> str:
    """Rewrite every ``"model": "claude-..."`` (and optionally max_tokens) in ``text``."""
    text = _MODEL_RE.sub(lambda m: f"{m.group(1)}{model}{m.group(2)}", text)
    if max_tokens is not None:
        text = _MAX_TOKENS_RE.sub(lambda m: f"{m.group(1)}{int(max_tokens)}", text)
    return text
