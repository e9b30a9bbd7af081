"""
Claude Session Progress Logger workflow.

Webhook ``POST /webhook/claude-progress`` receives a session summary
(completed / in_progress / todo / blockers / questions), appends it to the
day's Google Doc (created in the Drive folder when missing) and creates one
ClickUp task per item unless a task with the same title already exists.

Usage:
    abb-build-workflow > n8n_workflows/progress_logger.json
"""
from __future__ import annotations

from abb_automation.nodes import (
    CLICKUP_API,
    clickup_headers,
    code_node,
    conn,
    credential,
    http_request_node,
    if_node,
    node,
    respond_node,
    webhook_node,
)

WORKFLOW_NAME = "Claude Session Progress Logger"
WEBHOOK_PATH = "claude-progress"

DRIVE_FOLDER_ID = "1JQeh1AMB02E1gIl_tqHKvvc3GQoHRbws"
ABB_CLICKUP_LIST = "901414349243"
GOOGLE_DRIVE_CRED = credential("googleDriveOAuth2Api", "9pLcah8bZziqZuRW",
                               "4434 lifeline Google Drive account")
GOOGLE_DOC_MIME = "application/vnd.google-apps.document"

# ──────────────────────────────────────────────────
# Code-node scripts
# ──────────────────────────────────────────────────
PARSE_JS = r"""
const body = $input.first().json.body || $input.first().json;

const now = new Date();
const pst = new Date(now.toLocaleString('en-US', { timeZone: 'America/Los_Angeles' }));
const mm = String(pst.getMonth() + 1).padStart(2, '0');
const dd = String(pst.getDate()).padStart(2, '0');
const yy = String(pst.getFullYear()).slice(2);
const datePST = body.date_pst || (mm + '/' + dd + '/' + yy);
const docName = body.date_pst
  ? body.date_pst.replace(/(\d{2})\/(\d{2})\/(\d{2})/, function(_, m, d, y) { return m + '/' + d + '/20' + y; })
  : (mm + '/' + dd + '/20' + yy);

const business = body.business || 'Angelsbailbonds';
const lower = business.toLowerCase();
const tabKeywords = (lower.includes('angel') || lower.includes('bail'))
  ? ['angel', 'bail bond', 'abb', 'angelsbailbonds']
  : null;

function list(v) { return Array.isArray(v) ? v : []; }

return [{
  json: {
    datePST, docName, business, tabKeywords,
    completed: list(body.completed),
    in_progress: list(body.in_progress),
    todo: list(body.todo),
    blockers: list(body.blockers),
    questions: list(body.questions),
  }
}];
""".strip()

RESOLVE_DOC_JS = r"""
const item = $input.first().json;
const parsed = $('Code: Parse & PST Date').first().json;
// search returns files[0].id, create returns id
const docId = (item.files && item.files[0]) ? item.files[0].id : item.id;
return [{ json: { ...parsed, docId } }];
""".strip()

FIND_TAB_JS = r"""
const doc = $input.first().json;
const d = $('Code: Resolve Doc ID').first().json;
const tabs = doc.tabs || [];

function props(tab) { return (tab.documentTab && tab.documentTab.properties) || {}; }

let tabId = null;
let tabTitle = null;
const keywords = d.tabKeywords || ['claude'];
for (var i = 0; i < tabs.length; i++) {
  var title = (props(tabs[i]).title || '').toLowerCase();
  if (keywords.some(function(k) { return title.includes(k); })) {
    tabId = props(tabs[i]).index || 0;
    tabTitle = props(tabs[i]).title || d.business;
    break;
  }
}
if (tabId === null && d.tabKeywords && tabs.length > 0) {
  tabId = props(tabs[0]).index || 0;
  tabTitle = props(tabs[0]).title || d.business;
}
tabTitle = tabTitle || 'claude';

const lines = ['', '-----------------------------------------',
  'Claude Code Session - ' + d.datePST + ' PST',
  '-----------------------------------------'];
function section(label, arr) {
  lines.push(label);
  if (!arr || arr.length === 0) { lines.push('  - (none)'); }
  else { arr.forEach(function(t) { lines.push('  - ' + t); }); }
  lines.push('');
}
section('COMPLETED', d.completed);
section('IN PROGRESS', d.in_progress);
section('TODO', d.todo);
section('BLOCKERS', d.blockers);
section('QUESTIONS', d.questions);

const clickupItems = [];
d.completed.forEach(function(t) { clickupItems.push({ text: t, status: 'complete' }); });
d.in_progress.forEach(function(t) { clickupItems.push({ text: t, status: 'in progress' }); });
d.todo.forEach(function(t) { clickupItems.push({ text: t, status: 'to do' }); });
d.blockers.forEach(function(t) { clickupItems.push({ text: '[BLOCKER] ' + t, status: 'blocked' }); });
d.questions.forEach(function(t) { clickupItems.push({ text: '[Q] ' + t, status: 'to do' }); });

return [{
  json: {
    datePST: d.datePST,
    docName: d.docName,
    business: d.business,
    docId: d.docId,
    tabId, tabTitle,
    sessionText: lines.join('\n'),
    clickupItems,
    clickupTaskPrefix: d.datePST + ' - ' + d.business + ' | ',
  }
}];
""".strip()

EXPLODE_ITEMS_JS = r"""
const d = $('Code: Find/Note Tab').first().json;
return d.clickupItems.map(function(item) { return { json: item }; });
""".strip()


def _google(nid: str, name: str, method: str, url: str, pos: list[int],
            body: str | None = None, query: list[dict] | None = None) -> dict:
    n = http_request_node(nid, name, method, url, pos,
                          headers=[{"name": "Content-Type", "value": "application/json"}] if body else None,
                          body=body, creds=GOOGLE_DRIVE_CRED)
    n["parameters"]["authentication"] = "predefinedCredentialType"
    n["parameters"]["nodeCredentialType"] = "googleDriveOAuth2Api"
    if query:
        n["parameters"]["sendQuery"] = True
        n["parameters"]["queryParameters"] = {"parameters": query}
    return n


def build_progress_logger(folder_id: str = DRIVE_FOLDER_ID, list_id: str = ABB_CLICKUP_LIST,
                          clickup_key_expr: str = "={{ $env.CLICKUP_API_KEY }}") -> dict:
    """Return the workflow body accepted by ``POST /api/v1/workflows``."""
    search_q = (
        f"={{{{ \"'\" + \"{folder_id}\" + \"' in parents and name='\" + $json.docName + "
        f"\"' and mimeType='{GOOGLE_DOC_MIME}' and trashed=false\" }}}}"
    )
    create_body = (
        "={{ JSON.stringify({ name: $('Code: Parse & PST Date').item.json.docName, "
        f"mimeType: '{GOOGLE_DOC_MIME}', parents: ['{folder_id}'] }}) }}}}"
    )
    task_body = (
        "={{ JSON.stringify({ name: $('Code: Find/Note Tab').item.json.clickupTaskPrefix"
        " + $('Split: ClickUp Items').item.json.text,"
        " status: $('Split: ClickUp Items').item.json.status,"
        " description: 'Logged by Claude Code session - ' + $('Code: Find/Note Tab').item.json.datePST }) }}"
    )
    respond_body = (
        "={{ JSON.stringify({ ok: true,"
        " date: $('Code: Parse & PST Date').first().json.datePST,"
        " business: $('Code: Parse & PST Date').first().json.business,"
        " items_logged: $('Code: Find/Note Tab').first().json.clickupItems.length }) }}"
    )

    webhook = webhook_node("webhook-node", "Webhook: Claude Progress", WEBHOOK_PATH, [0, 300],
                           response_mode="responseNode")

    search_task = http_request_node(
        "http-search-clickup", "HTTP: Search ClickUp Task", "GET",
        f"{CLICKUP_API}/list/{list_id}/task", [2640, 300],
        headers=[{"name": "Authorization", "value": clickup_key_expr}],
    )
    search_task["parameters"]["sendQuery"] = True
    search_task["parameters"]["queryParameters"] = {"parameters": [
        {"name": "search",
         "value": "={{ $('Code: Find/Note Tab').item.json.clickupTaskPrefix + $json.text }}"},
        {"name": "include_closed", "value": "true"},
    ]}

    nodes = [
        webhook,
        code_node("code-parse", "Code: Parse & PST Date", PARSE_JS, [240, 300]),
        _google("http-search-drive", "HTTP: Search Drive", "GET",
                "https://www.googleapis.com/drive/v3/files", [480, 300],
                query=[{"name": "q", "value": search_q},
                       {"name": "fields", "value": "files(id,name)"},
                       {"name": "spaces", "value": "drive"}]),
        if_node("if-doc-exists", "IF: Doc Exists?",
                "={{ $json.files && $json.files.length > 0 }}", [720, 300],
                operation="true", right=True, value_type="boolean"),
        _google("http-create-doc", "HTTP: Create Doc in Drive", "POST",
                "https://www.googleapis.com/drive/v3/files", [960, 460], body=create_body),
        code_node("merge-doc-id", "Code: Resolve Doc ID", RESOLVE_DOC_JS, [1200, 300]),
        _google("http-get-doc", "HTTP: Get Doc with Tabs", "GET",
                '={{ "https://docs.googleapis.com/v1/documents/" + $json.docId + "?includeTabsContent=true" }}',
                [1440, 300]),
        code_node("code-find-tab", "Code: Find/Note Tab", FIND_TAB_JS, [1680, 300]),
        _google("docs-append", "Docs: Append Session", "POST",
                '={{ "https://docs.googleapis.com/v1/documents/" + $json.docId + ":batchUpdate" }}',
                [1920, 300],
                body='={{ JSON.stringify({ requests: [{ insertText: { endOfSegmentLocation:'
                     ' { segmentId: "" }, text: $json.sessionText } }] }) }}'),
        code_node("code-explode", "Code: ClickUp Items", EXPLODE_ITEMS_JS, [2160, 300]),
        node("split-items", "Split: ClickUp Items", "splitInBatches",
             {"batchSize": 1, "options": {}}, [2400, 300], version=3),
        search_task,
        if_node("if-task-exists", "IF: Task Exists?", "={{ ($json.tasks || []).length }}",
                [2880, 300], operation="gt", right=0, value_type="number"),
        http_request_node("http-create-task", "HTTP: Create ClickUp Task", "POST",
                          f"{CLICKUP_API}/list/{list_id}/task", [3120, 460],
                          headers=clickup_headers(clickup_key_expr), body=task_body),
        respond_node("respond-webhook", "Respond: Success", respond_body, [2640, 100]),
    ]

    connections: dict = {}
    for src, *targets in [
        ("Webhook: Claude Progress", "Code: Parse & PST Date"),
        ("Code: Parse & PST Date", "HTTP: Search Drive"),
        ("HTTP: Search Drive", "IF: Doc Exists?"),
        ("IF: Doc Exists?", "Code: Resolve Doc ID", "HTTP: Create Doc in Drive"),
        ("HTTP: Create Doc in Drive", "Code: Resolve Doc ID"),
        ("Code: Resolve Doc ID", "HTTP: Get Doc with Tabs"),
        ("HTTP: Get Doc with Tabs", "Code: Find/Note Tab"),
        ("Code: Find/Note Tab", "Docs: Append Session"),
        ("Docs: Append Session", "Code: ClickUp Items"),
        ("Code: ClickUp Items", "Split: ClickUp Items"),
        # splitInBatches v3: output 0 is "done", output 1 is "loop"
        ("Split: ClickUp Items", "Respond: Success", "HTTP: Search ClickUp Task"),
        ("HTTP: Search ClickUp Task", "IF: Task Exists?"),
        # true (task exists) goes straight back to the loop
        ("IF: Task Exists?", "Split: ClickUp Items", "HTTP: Create ClickUp Task"),
        ("HTTP: Create ClickUp Task", "Split: ClickUp Items"),
    ]:
        connections.update(conn(src, *targets))

    return {
        "name": WORKFLOW_NAME,
        "nodes": nodes,
        "connections": connections,
        "settings": {"executionOrder": "v1"},
    }
