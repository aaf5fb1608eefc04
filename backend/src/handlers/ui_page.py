"""The single maintenance request page (form, live list, notification modal)."""

import html
import json

from models.maintenance_request import SYSTEM_OPTIONS, RequestStatus

_PAGE = """<!doctype html>
<html lang="th">
<head>
<meta charset="utf-8">
<meta name="viewport" content="width=device-width, initial-scale=1">
<title>แจ้งซ่อมบำรุง</title>
<style>
body { font-family: sans-serif; margin: 0 auto; max-width: 960px; padding: 16px; background: #f4f6f8; }
form, .card { background: #fff; border-radius: 8px; padding: 16px; margin-bottom: 16px; }
label { display: block; margin-top: 8px; font-weight: bold; }
input, select, textarea { width: 100%; padding: 6px; box-sizing: border-box; }
.row { display: flex; gap: 8px; }
.row > div { flex: 1; }
#modal { position: fixed; inset: 0; background: rgba(0,0,0,.4); display: none; align-items: center; justify-content: center; }
#modal.visible { display: flex; }
#modal .box { background: #fff; padding: 24px; border-radius: 8px; max-width: 420px; }
small { color: #666; }
</style>
</head>
<body>
<h1>แบบฟอร์มแจ้งซ่อมบำรุง</h1>
<small>ผู้ใช้: <span id="user-id">กำลังเชื่อมต่อ...</span></small>

<form id="request-form">
  <label for="date_notified">วันที่แจ้ง</label>
  <input id="date_notified" type="date" required>
  <label for="system">ระบบ</label>
  <select id="system" required>
    <option value="">-- เลือกระบบ --</option>
    __SYSTEM_OPTIONS__
  </select>
  <label for="work_order_number">ชื่อผู้แจ้ง</label>
  <input id="work_order_number">
  <div class="row">
    <div><label for="area">พื้นที่</label><input id="area" required></div>
    <div><label for="floor">ชั้น</label><input id="floor" required></div>
    <div><label for="building">อาคาร</label><input id="building" required></div>
  </div>
  <label for="symptoms">อาการ</label>
  <textarea id="symptoms" rows="3" required></textarea>
  <label for="action_taken">การดำเนินการเบื้องต้น</label>
  <textarea id="action_taken" rows="2"></textarea>
  <label for="desired_date_time">วันเวลาที่ต้องการให้เข้าบริการ</label>
  <input id="desired_date_time" type="datetime-local">
  <label for="attachment">แนบรูปภาพ</label>
  <input id="attachment" type="file" accept="image/*">
  <p><button type="submit">ส่งแจ้งซ่อม</button></p>
</form>

<div class="card">
  <h2>รายการแจ้งซ่อม</h2>
  <div id="request-list">ยังไม่มีรายการ</div>
</div>

<div id="modal"><div class="box"><p id="modal-message"></p><button id="modal-close">ปิด</button></div></div>

<script>
const CONFIG = __CONFIG__;
const FIELDS = ["date_notified", "system", "work_order_number", "area", "floor", "building", "symptoms", "action_taken", "desired_date_time"];
let accessToken = null;
let socket = null;

function notify(message) {
  document.getElementById("modal-message").textContent = message;
  document.getElementById("modal").classList.add("visible");
}
document.getElementById("modal-close").onclick = () => document.getElementById("modal").classList.remove("visible");

async function api(method, path, body) {
  const headers = {"Content-Type": "application/json"};
  if (accessToken) headers["Authorization"] = "Bearer " + accessToken;
  const r = await fetch(path, {method, headers, body: body ? JSON.stringify(body) : undefined});
  const j = await r.json().catch(() => ({}));
  if (!r.ok) throw new Error(typeof j.detail === "string" ? j.detail : JSON.stringify(j.detail || r.status));
  return j;
}

function renderList(requests) {
  const list = document.getElementById("request-list");
  list.innerHTML = "";
  if (!requests.length) { list.textContent = "ยังไม่มีรายการ"; return; }
  for (const req of requests) {
    const card = document.createElement("div");
    card.className = "card";
    const title = document.createElement("strong");
    title.textContent = req.system + " | " + req.building + " ชั้น " + req.floor + " " + req.area;
    const body = document.createElement("p");
    body.textContent = req.symptoms + " (แจ้งเมื่อ " + req.date_notified + (req.work_order_number ? " โดย " + req.work_order_number : "") + ")";
    const select = document.createElement("select");
    for (const s of CONFIG.statuses) {
      const opt = document.createElement("option");
      opt.value = s; opt.textContent = s; opt.selected = s === req.status;
      select.appendChild(opt);
    }
    select.onchange = () => updateStatus(req.request_id, select.value);
    card.append(title, body, select);
    list.appendChild(card);
  }
}

function subscribe() {
  if (socket) { socket.onclose = null; socket.onerror = null; socket.close(); }
  const proto = location.protocol === "https:" ? "wss://" : "ws://";
  socket = new WebSocket(proto + location.host + "/ws/namespaces/" + encodeURIComponent(CONFIG.namespace) + "/requests?token=" + encodeURIComponent(accessToken));
  socket.onmessage = (ev) => {
    const msg = JSON.parse(ev.data);
    if (msg.event === "snapshot") renderList(msg.data.requests);
    else if (msg.event === "error") notify("เกิดข้อผิดพลาดในการโหลดข้อมูล: " + msg.data.detail);
  };
  socket.onerror = () => notify("เกิดข้อผิดพลาดในการโหลดข้อมูล: connection error");
  socket.onclose = (ev) => {
    const cause = ev.code === 4401 ? "unauthorized" : "connection closed (" + ev.code + ")";
    notify("เกิดข้อผิดพลาดในการโหลดข้อมูล: " + cause);
  };
}

async function bootstrap() {
  try {
    const res = CONFIG.initialToken
      ? await api("POST", "/api/v1/auth/token", {token: CONFIG.initialToken})
      : await api("POST", "/api/v1/auth/anonymous");
    accessToken = res.tokens.access_token;
    document.getElementById("user-id").textContent = res.user.user_id;
    subscribe();
  } catch (e) {
    notify("เกิดข้อผิดพลาดในการยืนยันตัวตน: " + e.message);
  }
}

document.getElementById("request-form").onsubmit = async (ev) => {
  ev.preventDefault();
  if (!accessToken) { notify("ยังไม่ได้ยืนยันตัวตน กรุณาลองใหม่อีกครั้ง"); return; }
  const body = {};
  for (const f of FIELDS) body[f] = document.getElementById(f).value || null;
  body.work_order_number = body.work_order_number || "";
  body.has_attachment = document.getElementById("attachment").files.length > 0;
  try {
    await api("POST", "/api/v1/namespaces/" + encodeURIComponent(CONFIG.namespace) + "/requests", body);
    ev.target.reset();
    notify("บันทึกข้อมูลการแจ้งซ่อมเรียบร้อยแล้ว");
  } catch (e) {
    notify("เกิดข้อผิดพลาดในการบันทึกข้อมูล: " + e.message);
  }
};

async function updateStatus(requestId, status) {
  try {
    await api("PATCH", "/api/v1/namespaces/" + encodeURIComponent(CONFIG.namespace) + "/requests/" + encodeURIComponent(requestId) + "/status", {status});
    notify("อัปเดตสถานะเรียบร้อยแล้ว");
  } catch (e) {
    notify("เกิดข้อผิดพลาดในการอัปเดตสถานะ: " + e.message);
  }
}

bootstrap();
</script>
</body>
</html>
"""


def render_page(namespace: str, initial_token: str | None = None) -> str:
    """Render the page with its runtime configuration inlined."""
    options = "\n    ".join(
        f'<option value="{html.escape(s)}">{html.escape(s)}</option>'
        for s in SYSTEM_OPTIONS
    )
    config = {
        "namespace": namespace,
        "initialToken": initial_token,
        "statuses": [s.value for s in RequestStatus],
    }
    # Keep the JSON safe inside a <script> block
    config_json = json.dumps(config, ensure_ascii=False).replace("</", "<\\/")
    return _PAGE.replace("__SYSTEM_OPTIONS__", options).replace(
        "__CONFIG__", config_json
    )
