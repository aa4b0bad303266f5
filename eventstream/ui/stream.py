from eventstream.ui.layout import page_html


def stream_page(stream_path: str = "/api/sse", events_path: str = "/api/events") -> str:
    body = f"""
  <h2>SSE Event Stream</h2>
  <p class="muted">Live lifecycle events relayed from the origin, plus the stored history.</p>

  <div class="card toolbar">
    <button id="start" class="btn primary" type="button" onclick="startStream()">Start</button>
    <button id="stop" class="btn warn" type="button" onclick="stopStream()" hidden>Stop</button>
    <span id="status" class="muted">idle</span>
  </div>

  <div class="card">
    <h3>Live</h3>
    <p id="empty" class="muted">Press Start to open the event stream.</p>
    <ul id="log" role="log" aria-live="polite" aria-label="SSE event log"></ul>
  </div>

  <div class="card">
    <h3>History <button class="btn" type="button" onclick="loadHistory()">Refresh</button></h3>
    <table>
      <thead><tr><th>ID</th><th>Type</th><th>Message</th><th>Data</th><th>Stored</th></tr></thead>
      <tbody id="history"><tr><td colspan="5" class="muted">Not loaded.</td></tr></tbody>
    </table>
  </div>

  <script>
    const STREAM_URL = "{stream_path}";
    const EVENTS_URL = "{events_path}";

    // One subscription at a time; start/stop are the only mutators.
    const session = {{ source: null, active: false }};

    function esc(s) {{
      return String(s ?? "").replace(/&/g, "&amp;").replace(/</g, "&lt;").replace(/>/g, "&gt;");
    }}

    function setActive(active) {{
      session.active = active;
      document.getElementById("start").disabled = active;
      document.getElementById("stop").hidden = !active;
      document.getElementById("status").textContent = active ? "streaming..." : "idle";
    }}

    function append(evt) {{
      document.getElementById("empty").hidden = true;
      const li = document.createElement("li");
      li.className = "event " + evt.type;
      li.innerHTML =
        `<div class="hdr"><b>${{esc(evt.type)}}</b><time>${{esc(new Date(evt.timestamp).toLocaleTimeString())}}</time></div>` +
        `<div>${{esc(evt.message)}}</div>` +
        (evt.data ? `<pre>${{esc(JSON.stringify(evt.data, null, 2))}}</pre>` : "");
      document.getElementById("log").appendChild(li);
    }}

    function finish() {{
      if (session.source) session.source.close();
      session.source = null;
      setActive(false);
    }}

    function startStream() {{
      if (session.active) return;
      document.getElementById("log").innerHTML = "";
      setActive(true);

      const source = new EventSource(STREAM_URL);
      session.source = source;

      source.onmessage = (e) => {{
        if (session.source !== source) return;
        let payload;
        try {{
          payload = JSON.parse(e.data);
        }} catch (err) {{
          console.error("Failed to parse SSE data:", err);
          return;
        }}
        const evt = {{
          id: crypto.randomUUID(),
          type: payload.type || "message",
          message: payload.message || "",
          data: payload.data,
          timestamp: payload.timestamp || new Date().toISOString(),
        }};
        append(evt);
        if (evt.type === "complete") {{
          finish();
          loadHistory();
        }}
      }};

      source.onerror = () => {{
        if (session.source !== source) return;
        if (source.readyState === EventSource.CLOSED) {{
          finish();
          return;
        }}
        append({{ type: "error", message: "Connection error", timestamp: new Date().toISOString() }});
        finish();
      }};
    }}

    function stopStream() {{
      if (!session.active) return;
      finish();
    }}

    async function loadHistory() {{
      const tbody = document.getElementById("history");
      try {{
        // EventSource exposes no response headers, so the page cannot learn its
        // session id; it shows the unfiltered (latest-session) history.
        const r = await fetch(EVENTS_URL);
        if (!r.ok) throw new Error("HTTP " + r.status);
        const rows = await r.json();
        tbody.innerHTML = rows.length
          ? rows.map(x => `<tr class="${{esc(x.type)}}"><td>${{x.id}}</td><td>${{esc(x.type)}}</td><td>${{esc(x.message)}}</td>` +
              `<td><code>${{esc(x.data || "")}}</code></td><td>${{esc(x.timestamp)}}</td></tr>`).join("")
          : '<tr><td colspan="5" class="muted">No stored events.</td></tr>';
      }} catch (err) {{
        console.error("Failed to load history:", err);
        tbody.innerHTML = '<tr><td colspan="5" class="muted">History unavailable.</td></tr>';
      }}
    }}
  </script>
"""

    extra_css = """
    .toolbar { display:flex; gap:10px; align-items:center; }
    .btn { border:1px solid #3f3f46; background:#18181b; color:#e4e4e7; padding:6px 12px; border-radius:10px; cursor:pointer; }
    .btn:disabled { opacity:0.5; cursor:not-allowed; }
    .btn.primary { border-color:#2563eb; background:#2563eb; color:white; }
    .btn.warn { border-color:#dc2626; background:#dc2626; color:white; }
    #log { list-style:none; padding:0; display:grid; gap:10px; max-height:600px; overflow-y:auto; }
    .event { border-radius:10px; padding:10px; border-left:4px solid #a855f7; background:#18181b; }
    .event.connecting { border-left-color:#3b82f6; }
    .event.complete { border-left-color:#22c55e; }
    .event.error { border-left-color:#ef4444; }
    .hdr { display:flex; justify-content:space-between; font-size:13px; margin-bottom:4px; }
    .hdr time { color:#71717a; font-family:monospace; }
    pre { margin:6px 0 0; font-size:12px; color:#a1a1aa; white-space:pre-wrap; }
    table { width:100%; border-collapse: collapse; }
    th, td { padding:8px; border-bottom:1px solid #27272a; text-align:left; vertical-align:top; font-size:13px; }
"""
    return page_html("SSE Event Stream", body, active="stream", extra_css=extra_css)
