#!/usr/bin/env python
"""
Capture-side CLI: extract embeddings, submit attempts and drain the offline queue.

Usage:
    presence-gate-client extract face.json --image-width 720 --image-height 1280
    presence-gate-client submit --user-id 7 --face face.json --lat 25.2 --lng 55.27 --ssid OfficeNet
    presence-gate-client enqueue --user-id 7 --embedding vector.json --lat 25.2 --lng 55.27 --type check_out
    presence-gate-client pending
    presence-gate-client reconcile

Server URL, access token, queue location and queue encryption key default to
the PRESENCE_GATE_URL, PRESENCE_GATE_TOKEN, PRESENCE_GATE_QUEUE_PATH and
PRESENCE_GATE_QUEUE_KEY environment variables.
"""

import argparse
import json
import logging
import os
import sys
from datetime import datetime, timezone
from pathlib import Path

from attendance.attempts import AttendanceAttempt, Direction, GeoPoint, InvalidAttempt, NetworkIdentity
from attendance.outcomes import Admitted, Rejected
from offline_queue.reconciler import QueueReconciler
from offline_queue.store import PendingAttemptStore, QueueStorageError
from offline_queue.transport import HttpEngineTransport, TransportFailure
from recognition.extraction import assess_alignment, extract_features
from recognition.geometry import FaceGeometry

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_PATH = Path.home() / ".presence_gate" / "pending_attendance.sqlite3"


def _read_json(path: str):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _emit(result: dict, as_json: bool, event: str) -> None:
    if as_json:
        logger.info(json.dumps(result, indent=2, default=str), extra={"event": event})
        return
    lines = [f"{key}: {value}" for key, value in result.items()]
    logger.info("\n".join(lines), extra={"event": event})


def _embedding_from_args(args) -> list:
    if args.embedding:
        raw = _read_json(args.embedding)
        if isinstance(raw, dict):
            raw = raw.get("embedding") or raw.get("face_embedding")
        return list(raw or [])

    face = FaceGeometry.from_dict(_read_json(args.face))
    extraction = extract_features(face, min_quality=args.min_quality)
    if extraction.is_low_quality:
        raise InvalidAttempt(
            f"Capture quality {extraction.quality:.2f} is below {args.min_quality:.2f}; retake the photo."
        )
    return extraction.embedding.tolist()


def build_attempt(args) -> AttendanceAttempt:
    """Assemble an attempt from command-line arguments."""

    return AttendanceAttempt.from_payload(
        {
            "user_id": args.user_id,
            "face_embedding": _embedding_from_args(args),
            "location": GeoPoint(args.lat, args.lng).to_dict(),
            "wifi_info": NetworkIdentity(args.ssid, args.bssid).to_dict(),
            "type": args.type,
            "client_timestamp": datetime.now(timezone.utc).isoformat(),
        }
    )


def _open_store(args) -> PendingAttemptStore:
    store = PendingAttemptStore(args.queue, encryption_key=args.queue_key or None)
    store.open()
    return store


def _transport(args) -> HttpEngineTransport:
    if not args.url:
        raise SystemExit("A server URL is required (--url or PRESENCE_GATE_URL).")
    return HttpEngineTransport(args.url, args.token or None, timeout=args.timeout)


def _describe_outcome(outcome) -> dict:
    if isinstance(outcome, Admitted):
        return {"result": "admitted", **outcome.to_response()["data"]}
    if isinstance(outcome, Rejected):
        return {"result": "rejected", "error": outcome.code.value, "message": outcome.message}
    return {"result": "transport_failure", "reason": outcome.reason}


def cmd_extract(args) -> int:
    face = FaceGeometry.from_dict(_read_json(args.face_file))
    extraction = extract_features(face, min_quality=args.min_quality)
    result = {
        "quality": round(extraction.quality, 4),
        "low_quality": extraction.is_low_quality,
        "embedding": [round(value, 6) for value in extraction.embedding.tolist()],
    }
    if args.image_width and args.image_height:
        alignment = assess_alignment(face, args.image_width, args.image_height)
        result["aligned"] = alignment.is_aligned
        result["instruction"] = alignment.instruction
    _emit(result, as_json=True, event="embedding_extracted")
    return 1 if extraction.is_low_quality else 0


def cmd_submit(args) -> int:
    attempt = build_attempt(args)
    outcome = _transport(args).submit(attempt)
    if isinstance(outcome, TransportFailure):
        with _open_store(args) as store:
            pending = store.enqueue(attempt)
        _emit(
            {"result": "queued", "pending_id": pending.id, "reason": outcome.reason},
            args.json,
            "attendance_queued",
        )
        return 0

    _emit(_describe_outcome(outcome), args.json, "attendance_submitted")
    return 0 if isinstance(outcome, Admitted) else 2


def cmd_enqueue(args) -> int:
    attempt = build_attempt(args)
    with _open_store(args) as store:
        pending = store.enqueue(attempt)
        queued = store.count()
    _emit({"result": "queued", "pending_id": pending.id, "queue_length": queued}, args.json, "attendance_queued")
    return 0


def cmd_pending(args) -> int:
    with _open_store(args) as store:
        entries = store.list_pending()
    rows = [
        {
            "id": entry.id,
            "user_id": entry.user_id,
            "type": entry.direction,
            "created_at": entry.created_at.isoformat(),
            "retry_count": entry.retry_count,
            "last_error": entry.last_error,
        }
        for entry in entries
    ]
    if args.json:
        logger.info(json.dumps(rows, indent=2), extra={"event": "queue_listed"})
    elif not rows:
        logger.info("No pending attendance attempts.")
    else:
        for row in rows:
            logger.info(
                "#%(id)s %(type)s user=%(user_id)s queued=%(created_at)s retries=%(retry_count)s %(last_error)s"
                % {**row, "last_error": row["last_error"] or ""}
            )
    return 0


def cmd_reconcile(args) -> int:
    with _open_store(args) as store:
        reconciler = QueueReconciler(store, _transport(args))
        result = reconciler.reconcile()
        remaining = store.count()
    summary = {
        "total": result.total,
        "succeeded": result.succeeded,
        "rejected": result.rejected,
        "retrying": result.retrying,
        "corrupt": result.corrupt,
        "quarantined": result.quarantined,
        "remaining": remaining,
    }
    for entry, outcome in result.rejections:
        summary[f"rejected_{entry.id}"] = f"{outcome.code.value}: {outcome.message}"
    _emit(summary, args.json, "queue_reconciled")
    return 0 if result.failed == 0 else 2


def _add_attempt_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--user-id", required=True, help="Account the attempt is made for")
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--face", help="Detector output JSON for the captured face")
    source.add_argument("--embedding", help="JSON file holding a precomputed embedding")
    parser.add_argument("--lat", type=float, required=True, help="Device latitude")
    parser.add_argument("--lng", type=float, required=True, help="Device longitude")
    parser.add_argument("--ssid", default=None, help="Connected Wi-Fi SSID")
    parser.add_argument("--bssid", default=None, help="Connected Wi-Fi BSSID")
    parser.add_argument(
        "--type",
        choices=[direction.value for direction in Direction],
        default=Direction.CHECK_IN.value,
        help="check_in or check_out (default: check_in)",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Presence Gate capture client")
    parser.add_argument("--url", default=os.environ.get("PRESENCE_GATE_URL"), help="Server base URL")
    parser.add_argument("--token", default=os.environ.get("PRESENCE_GATE_TOKEN"), help="JWT access token")
    parser.add_argument(
        "--queue",
        default=os.environ.get("PRESENCE_GATE_QUEUE_PATH", str(DEFAULT_QUEUE_PATH)),
        help="Offline queue database path",
    )
    parser.add_argument(
        "--queue-key",
        default=os.environ.get("PRESENCE_GATE_QUEUE_KEY"),
        help="Fernet key used to encrypt queued payloads",
    )
    parser.add_argument("--timeout", type=float, default=10.0, help="HTTP timeout in seconds")
    parser.add_argument(
        "--min-quality", type=float, default=0.5, help="Reject captures scoring below this quality"
    )
    parser.add_argument("--json", action="store_true", help="Output results as JSON")

    subparsers = parser.add_subparsers(dest="command", required=True)

    extract = subparsers.add_parser("extract", help="Compute an embedding from detector output")
    extract.add_argument("face_file", help="Detector output JSON")
    extract.add_argument("--image-width", type=float, default=None)
    extract.add_argument("--image-height", type=float, default=None)
    extract.set_defaults(handler=cmd_extract)

    submit = subparsers.add_parser("submit", help="Submit an attempt, queueing it if the server is unreachable")
    _add_attempt_arguments(submit)
    submit.set_defaults(handler=cmd_submit)

    enqueue = subparsers.add_parser("enqueue", help="Queue an attempt without contacting the server")
    _add_attempt_arguments(enqueue)
    enqueue.set_defaults(handler=cmd_enqueue)

    pending = subparsers.add_parser("pending", help="List queued attempts")
    pending.set_defaults(handler=cmd_pending)

    reconcile = subparsers.add_parser("reconcile", help="Replay queued attempts against the server")
    reconcile.set_defaults(handler=cmd_reconcile)

    return parser


def main(argv=None) -> int:
    if not logging.getLogger().handlers:
        logging.basicConfig(level=logging.INFO, format="%(message)s")
    args = build_parser().parse_args(argv)
    try:
        return args.handler(args)
    except (OSError, ValueError) as exc:
        logger.error("%s", exc, extra={"event": "client_input_error"})
        return 1
    except QueueStorageError as exc:
        logger.error("Offline queue unavailable: %s", exc, extra={"event": "queue_unavailable"})
        return 1


if __name__ == "__main__":
    sys.exit(main())
