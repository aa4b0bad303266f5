import argparse
import json
import sys

from eventstream.client.controller import SessionController
from eventstream.client.history import HistoryViewer
from eventstream.config import configure_logging
from eventstream.schemas import ClientEvent

ICONS = {
    "connecting": "🔵",
    "message": "📨",
    "complete": "✅",
    "error": "❌",
}


def print_event(evt: ClientEvent) -> None:
    line = f"{ICONS.get(evt.type, '•')} [{evt.timestamp}] {evt.type:<10} {evt.message}"
    if evt.data is not None:
        line += f"  {json.dumps(evt.data, ensure_ascii=False)}"
    print(line, flush=True)


def main() -> int:
    ap = argparse.ArgumentParser(description="Run one SSE session and print its events.")
    ap.add_argument("--base-url", default="http://localhost:3000")
    ap.add_argument("--stream-path", default="/api/sse", help="use /sse against the origin directly")
    ap.add_argument("--events-path", default="/api/events", help="use /events against the origin directly")
    ap.add_argument("--timeout", type=float, default=60.0, help="seconds to wait for the session to end")
    ap.add_argument("--no-history", action="store_true")
    ap.add_argument("--log-level", default="WARNING")

    args = ap.parse_args()
    configure_logging(args.log_level)

    base = args.base_url.rstrip("/")
    history = None if args.no_history else HistoryViewer(f"{base}{args.events_path}")

    controller = SessionController(
        f"{base}{args.stream_path}",
        history=history,
        on_event=print_event,
    )
    controller.start()

    try:
        finished = controller.wait(args.timeout)
    except KeyboardInterrupt:
        controller.stop()
        print("\nStopped.", file=sys.stderr)
        return 1

    if not finished:
        controller.stop()
        print(f"\nSession did not finish within {args.timeout:.0f}s", file=sys.stderr)
        return 2

    events = controller.events
    completed = bool(events) and events[-1].type == "complete"

    if history is not None and completed:
        print(f"\nStored history for session {controller.session_id or '?'} (newest first):")
        for rec in history.records:
            print(f"  #{rec.id:<5} {rec.type:<10} {rec.message}  {rec.data or ''}")

    if not completed:
        print("\nSession ended without a complete event", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
