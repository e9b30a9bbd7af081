"""
Daily Progress Backfill and Timesheet Sync workflows.

Backfill: every Google Doc in the progress folder is named after its day
(``MM/DD/YYYY``). Docs not yet recorded in the workflow's static data are
read, Claude keeps only the Angel's Bail Bonds items, and one ClickUp task
named after the date is created per day. A doc id is stored only after its
task was created, so a failed day is picked up again on the next run.

Timesheet Sync: the timesheet PDFs in the same folder go to Claude as
document blocks; the per-day task lists it returns are merged into the
date-named ClickUp tasks (created, or appended to when one exists).

Usage:
    abb-build-workflow --workflow daily-progress -o workflows/daily_progress.json
    abb-build-workflow --workflow timesheet-sync -o -
"""
from __future__ import annotations

import json

from abb_automation.backfill import mark_processed_js, skip_filter_js
from abb_automation.config import Settings
from abb_automation.nodes import (
    CLAUDE_URL,
    CLICKUP_API,
    claude_headers,
    claude_messages_body,
    clickup_headers,
    code_node,
    conn,
    credential,
    http_request_node,
    if_node,
    manual_trigger_node,
    move_binary_to_json_node,
    node,
    schedule_params,
)
from abb_automation.recipes import DAILY_CRON
from abb_automation.workflows.progress_logger import (
    ABB_CLICKUP_LIST,
    DRIVE_FOLDER_ID,
    GOOGLE_DOC_MIME,
    GOOGLE_DRIVE_CRED,
)

BACKFILL_NAME = "Angel Bail Bonds - Daily Progress Backfill"
TIMESHEET_NAME = "Angel Bail Bonds - Timesheet Sync"
DEFAULT_MODEL = Settings.anthropic_model

GOOGLE_DOCS_CRED = credential("googleDocsOAuth2Api", "NHKmASipLi8Aa6OM", "4434 Google Docs account")

TIMESHEET_PDFS = [
    {"id": "158jrGxKL6xLoof3PYiDDIfQ_lsJezbz6", "name": "Timesheet_2026-01-26_2026-02-08.pdf"},
    {"id": "18Cb73JkxHUe9LK2rtxa0WqmLFsJcpdjp", "name": "Timesheet_2026-02-09_2026-02-22.pdf"},
    {"id": "1UsyTsQqEFQGCiCKLJpRWd_UMlimYVCOG", "name": "Timesheet_2026-02-23_2026-03-08.pdf"},
]

NO_TASKS = "NO_TASKS"

# ──────────────────────────────────────────────────
# Code-node scripts: backfill
# ──────────────────────────────────────────────────
GET_DOCS_JS = r"""
// One item per day doc; the doc name is its date
var files = $input.first().json.files || [];
var docs = files
  .filter(function(f) {
    return f.mimeType === '%(mime)s' && /^\d{2}\/\d{2}\/\d{4}$/.test(f.name);
  })
  .map(function(f) { return { json: { docId: f.id, date: f.name } }; });
docs.sort(function(a, b) { return a.json.date.localeCompare(b.json.date); });
return docs;
""".strip() % {"mime": GOOGLE_DOC_MIME}

EXTRACT_TEXT_JS = r"""
function runText(elements) {
  return (elements || []).map(function(e) {
    return e.textRun ? (e.textRun.content || '') : '';
  }).join('');
}

function docText(doc) {
  var out = '';
  var blocks = (doc.body && doc.body.content) || [];
  blocks.forEach(function(b) {
    if (b.paragraph) {
      out += runText(b.paragraph.elements);
    } else if (b.table) {
      (b.table.tableRows || []).forEach(function(row) {
        (row.tableCells || []).forEach(function(cell) {
          (cell.content || []).forEach(function(c) {
            if (c.paragraph) out += runText(c.paragraph.elements) + '\t';
          });
        });
        out += '\n';
      });
    }
  });
  return out.trim();
}

var meta = $('Code: Skip Processed').all();
return $input.all().map(function(item, i) {
  var m = meta[i] ? meta[i].json : {};
  return { json: {
    docId: m.docId,
    date: m.date || item.json.title,
    listId: '%(list_id)s',
    content: docText(item.json),
  } };
});
""".strip()

FORMAT_JS = r"""
var content = $input.item.json.content || [];
var text = ((Array.isArray(content) && content[0]) ? content[0].text : '') || '';
text = text.trim();

var src = $('Code: Extract Text by Date').item.json;
if (!text || text === '%(no_tasks)s' || !src.date || !src.listId) {
  return { json: { _skip: true, docId: src.docId, date: src.date } };
}
return { json: { docId: src.docId, date: src.date, listId: src.listId, description: text } };
""".strip() % {"no_tasks": NO_TASKS}

SKIP_FILTER_JS = r"""
// Days without Angel's Bail Bonds work get no task
if ($input.item.json._skip) {
  return null;
}
return { json: $input.item.json };
""".strip()

FILTER_PROMPT_HEAD = "Review this daily progress document and extract ONLY Angel's Bail Bonds work.\n\nDATE: "
FILTER_PROMPT_MID = "\n\nDOCUMENT:\n"
FILTER_PROMPT_TAIL = (
    "\n\nRules:\n"
    "1. Include ONLY items related to Angel's Bail Bonds, Angels Bail Bonds, bail bonds, or ABB\n"
    "2. Remove exact duplicate entries\n"
    "3. Keep each item to one concise line\n"
    f"4. If nothing bail bonds-related exists, output exactly: {NO_TASKS}\n\n"
    "Output as a markdown bullet list (use - as bullet). No intro, no headers, just the list."
)

# ──────────────────────────────────────────────────
# Code-node scripts: timesheets
# ──────────────────────────────────────────────────
PARSE_PDF_JS = r"""
// Merge the per-PDF answers into one item per date
var byDate = {};
$input.all().forEach(function(item) {
  var content = item.json.content || [];
  var raw = ((content[0] && content[0].text) || '').trim();
  raw = raw.replace(/^```[a-z]*\s*/m, '').replace(/\s*```\s*$/m, '').trim();
  var parsed;
  try {
    parsed = JSON.parse(raw);
  } catch (e) {
    throw new Error('Claude did not return valid JSON. Raw: ' + raw.slice(0, 300));
  }
  (parsed.dates || []).forEach(function(d) {
    var tasks = byDate[d.date] || [];
    (d.tasks || []).forEach(function(t) { if (tasks.indexOf(t) === -1) tasks.push(t); });
    byDate[d.date] = tasks;
  });
});

return Object.keys(byDate).sort().map(function(date) {
  return { json: {
    date: date,
    description: byDate[date].map(function(t) { return '- ' + t; }).join('\n'),
  } };
});
""".strip()

PREPARE_UPSERT_JS = r"""
var existing = $input.first().json.tasks || [];
var separator = '\n\n---\n**From Timesheets:**\n';

return $('Code: Parse PDF Response').all().map(function(item) {
  var d = item.json;
  var match = existing.find(function(t) { return t.name === d.date; });
  if (match) {
    var current = match.markdown_description || match.description || '';
    return { json: { operation: 'update', taskId: match.id, date: d.date,
                     description: current + separator + d.description } };
  }
  return { json: { operation: 'create', date: d.date,
                   description: '**From Timesheets:**\n' + d.description } };
});
""".strip()

TIMESHEET_PROMPT = (
    "These are timesheet PDFs covering daily work records for multiple clients/projects.\n\n"
    "YOUR TASK:\n"
    "1. Find all work done for Angel's Bail Bonds (also: Angels Bail Bonds, bail bonds, ABB)\n"
    "2. Organize by date, including each calendar date that has Angel's Bail Bonds work\n"
    "3. For each date, list the specific TASKS or ACTIVITIES only, not hours\n"
    "4. Remove duplicate tasks within the same date\n"
    "5. Skip dates with no Angel's Bail Bonds work\n\n"
    "RETURN VALID JSON ONLY (no markdown, no code fences):\n"
    '{"dates": [{"date": "MM/DD/YYYY", "tasks": ["task 1", "task 2"]}]}'
)


def _google(nid: str, name: str, url: str, pos: list[int], creds: dict,
            query: list[dict] | None = None, options: dict | None = None) -> dict:
    """GET against a Google API using the node's predefined credential."""
    n = http_request_node(nid, name, "GET", url, pos, creds=creds, options=options)
    n["parameters"]["authentication"] = "predefinedCredentialType"
    n["parameters"]["nodeCredentialType"] = next(iter(creds))
    if query:
        n["parameters"]["sendQuery"] = True
        n["parameters"]["queryParameters"] = {"parameters": query}
    return n


def _workflow(name: str, nodes: list[dict], links: list[tuple]) -> dict:
    connections: dict = {}
    for src, *targets in links:
        connections.update(conn(src, *targets))
    return {
        "name": name,
        "nodes": nodes,
        "connections": connections,
        "settings": {"executionOrder": "v1"},
    }


def build_daily_progress(folder_id: str = DRIVE_FOLDER_ID, list_id: str = ABB_CLICKUP_LIST,
                         model: str = DEFAULT_MODEL, cron: str = DAILY_CRON,
                         clickup_key_expr: str = "={{ $env.CLICKUP_API_KEY }}") -> dict:
    """Return the backfill workflow body accepted by ``POST /api/v1/workflows``."""
    prompt_expr = (
        f"{json.dumps(FILTER_PROMPT_HEAD)} + $json.date + {json.dumps(FILTER_PROMPT_MID)}"
        f" + $json.content + {json.dumps(FILTER_PROMPT_TAIL)}"
    )
    nodes = [
        manual_trigger_node("run-backfill", "Run Backfill", [0, 300]),
        node("schedule-trigger", "Schedule Trigger", "scheduleTrigger",
             schedule_params(cron), [0, 500], version=1.2),
        _google("drive-list-docs", "Drive: List Docs", "https://www.googleapis.com/drive/v3/files",
                [224, 400], GOOGLE_DRIVE_CRED,
                query=[{"name": "q", "value": f"'{folder_id}' in parents and trashed = false"},
                       {"name": "pageSize", "value": "100"},
                       {"name": "fields", "value": "files(id,name,mimeType)"},
                       {"name": "orderBy", "value": "name"}]),
        code_node("get-google-docs", "Code: Get Google Docs", GET_DOCS_JS, [448, 400]),
        code_node("skip-processed", "Code: Skip Processed", skip_filter_js(), [672, 400]),
        if_node("if-new-docs", "IF: Nothing New?", "={{ $json.skip === true }}", [896, 400],
                operation="true", right=True, value_type="boolean"),
        _google("docs-read-content", "Docs: Read Content",
                "=https://docs.googleapis.com/v1/documents/{{ $json.docId }}",
                [1120, 500], GOOGLE_DOCS_CRED),
        code_node("extract-text", "Code: Extract Text by Date",
                  EXTRACT_TEXT_JS % {"list_id": list_id}, [1344, 500]),
        http_request_node("claude-filter", "Claude: Filter Angel Tasks", "POST", CLAUDE_URL,
                          [1568, 500], headers=claude_headers(),
                          body=claude_messages_body(model, 2048, prompt_expr)),
        code_node("format-clickup", "Code: Format for ClickUp", FORMAT_JS, [1792, 500],
                  per_item=True),
        code_node("skip-filter", "Code: Skip Filter", SKIP_FILTER_JS, [2016, 500], per_item=True),
        http_request_node("clickup-create-daily", "ClickUp: Create Daily Task", "POST",
                          f"={CLICKUP_API}/list/{{{{ $json.listId }}}}/task", [2240, 500],
                          headers=clickup_headers(clickup_key_expr),
                          body='={{ JSON.stringify({ "name": $json.date,'
                               ' "markdown_description": $json.description }) }}'),
        code_node("mark-processed", "Code: Mark Processed",
                  mark_processed_js(source_node="Code: Skip Filter"), [2464, 500]),
    ]
    return _workflow(BACKFILL_NAME, nodes, [
        ("Run Backfill", "Drive: List Docs"),
        ("Schedule Trigger", "Drive: List Docs"),
        ("Drive: List Docs", "Code: Get Google Docs"),
        ("Code: Get Google Docs", "Code: Skip Processed"),
        ("Code: Skip Processed", "IF: Nothing New?"),
        # true: every doc already has its task
        ("IF: Nothing New?", (), "Docs: Read Content"),
        ("Docs: Read Content", "Code: Extract Text by Date"),
        ("Code: Extract Text by Date", "Claude: Filter Angel Tasks"),
        ("Claude: Filter Angel Tasks", "Code: Format for ClickUp"),
        ("Code: Format for ClickUp", "Code: Skip Filter"),
        ("Code: Skip Filter", "ClickUp: Create Daily Task"),
        ("ClickUp: Create Daily Task", "Code: Mark Processed"),
    ])


def build_timesheet_sync(list_id: str = ABB_CLICKUP_LIST, model: str = DEFAULT_MODEL,
                         pdfs: list[dict] | None = None,
                         clickup_key_expr: str = "={{ $env.CLICKUP_API_KEY }}") -> dict:
    """Return the timesheet workflow body accepted by ``POST /api/v1/workflows``."""
    seed_js = (
        f"var pdfs = {json.dumps(pdfs or TIMESHEET_PDFS)};\n"
        "return pdfs.map(function(p) { return { json: p }; });"
    )
    existing = http_request_node(
        "clickup-existing", "ClickUp: Get Existing Tasks", "GET",
        f"{CLICKUP_API}/list/{list_id}/task?order_by=created&page=0", [1568, 300],
        headers=[{"name": "Authorization", "value": clickup_key_expr}],
    )
    existing["executeOnce"] = True
    headers = clickup_headers(clickup_key_expr)

    nodes = [
        manual_trigger_node("run-timesheet-sync", "Run Timesheet Sync", [0, 300]),
        code_node("timesheet-ids", "Code: Timesheet PDF IDs", seed_js, [224, 300]),
        _google("drive-download-pdf", "Drive: Download PDF",
                "=https://www.googleapis.com/drive/v3/files/{{ $json.id }}?alt=media",
                [448, 300], GOOGLE_DRIVE_CRED,
                options={"response": {"response": {"responseFormat": "file",
                                                   "outputPropertyName": "data"}}}),
        move_binary_to_json_node("pdf-to-base64", "Convert PDF to Base64", [672, 300]),
        http_request_node("claude-timesheet", "Claude: Extract Timesheet Tasks", "POST",
                          CLAUDE_URL, [896, 300], headers=claude_headers(),
                          body=claude_messages_body(model, 4096, json.dumps(TIMESHEET_PROMPT),
                                                    pdf_expr="$json.pdfBase64")),
        code_node("parse-pdf-response", "Code: Parse PDF Response", PARSE_PDF_JS, [1120, 300]),
        existing,
        code_node("prepare-upsert", "Code: Prepare Upsert", PREPARE_UPSERT_JS, [1792, 300]),
        if_node("if-create-or-update", "IF: Create or Update", "={{ $json.operation }}",
                [2016, 300], right="create"),
        http_request_node("clickup-create-pdf", "ClickUp: Create Task (PDF)", "POST",
                          f"{CLICKUP_API}/list/{list_id}/task", [2240, 200], headers=headers,
                          body='={{ JSON.stringify({ "name": $json.date,'
                               ' "markdown_description": $json.description }) }}'),
        http_request_node("clickup-update-pdf", "ClickUp: Update Task (PDF)", "PUT",
                          f"={CLICKUP_API}/task/{{{{ $json.taskId }}}}", [2240, 400],
                          headers=headers,
                          body='={{ JSON.stringify({ "markdown_description": $json.description }) }}'),
    ]
    return _workflow(TIMESHEET_NAME, nodes, [
        ("Run Timesheet Sync", "Code: Timesheet PDF IDs"),
        ("Code: Timesheet PDF IDs", "Drive: Download PDF"),
        ("Drive: Download PDF", "Convert PDF to Base64"),
        ("Convert PDF to Base64", "Claude: Extract Timesheet Tasks"),
        ("Claude: Extract Timesheet Tasks", "Code: Parse PDF Response"),
        ("Code: Parse PDF Response", "ClickUp: Get Existing Tasks"),
        ("ClickUp: Get Existing Tasks", "Code: Prepare Upsert"),
        ("Code: Prepare Upsert", "IF: Create or Update"),
        ("IF: Create or Update", "ClickUp: Create Task (PDF)", "ClickUp: Update Task (PDF)"),
    ])
