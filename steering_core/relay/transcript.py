"""会话记录导出与导入。

导出支持 json / txt / md / csv 四种格式，可按槽位过滤；
JSON 导出可以原样导入，保留每条消息的 id、model_type、content、created_at 及顺序。
"""

import csv
import io
import json
from datetime import datetime, timezone
from typing import Any, Dict, List, Literal, Optional, Sequence

from steering_core.domain.exceptions import ValidationError
from steering_core.domain.session import Message, Session

ExportFormat = Literal["json", "txt", "md", "csv"]
ExportFilter = Literal["all", "A", "B", "user"]

EXPORT_FORMATS = ("json", "txt", "md", "csv")
MEDIA_TYPES = {
    "json": "application/json",
    "txt": "text/plain",
    "md": "text/markdown",
    "csv": "text/csv",
}
SPEAKERS = {"user": "User", "A": "Model A", "B": "Model B", "system": "System"}
MODEL_TYPES = ("A", "B", "user", "system")


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def filter_messages(messages: Sequence[Message], model_filter: ExportFilter = "all") -> List[Message]:
    if model_filter == "all":
        return list(messages)
    return [m for m in messages if m.model_type == model_filter]


def build_export_data(
    session: Session,
    messages: Sequence[Message],
    fmt: ExportFormat = "json",
    model_filter: ExportFilter = "all",
    include_metadata: bool = True,
    include_timestamps: bool = True,
) -> Dict[str, Any]:
    selected = filter_messages(messages, model_filter)
    data: Dict[str, Any] = {}
    if include_metadata:
        data["session"] = {
            "id": session.id,
            "title": session.title,
            "created_at": _iso(session.created_at),
            "turn_count": session.turn_count,
            "is_paused": session.is_paused,
        }
        data["export_info"] = {
            "exported_at": _iso(datetime.now(timezone.utc)),
            "format": fmt,
            "message_count": len(selected),
            "filter": model_filter,
        }
    items = []
    for m in selected:
        item: Dict[str, Any] = {"id": m.id, "model_type": m.model_type, "content": m.content}
        if include_timestamps:
            item["created_at"] = _iso(m.created_at)
        items.append(item)
    data["messages"] = items
    return data


def export_session(
    session: Session,
    messages: Sequence[Message],
    fmt: ExportFormat = "json",
    model_filter: ExportFilter = "all",
    include_metadata: bool = True,
    include_timestamps: bool = True,
) -> str:
    """把会话渲染为指定格式的文本。"""

    if fmt not in EXPORT_FORMATS:
        raise ValidationError(code="INVALID_EXPORT_FORMAT", message=f"Unsupported export format: {fmt}")
    if model_filter not in ("all", "A", "B", "user"):
        raise ValidationError(code="INVALID_EXPORT_FILTER", message=f"Unsupported filter: {model_filter}")
    data = build_export_data(session, messages, fmt, model_filter, include_metadata, include_timestamps)
    if fmt == "json":
        return json.dumps(data, ensure_ascii=False, indent=2)
    if fmt == "csv":
        return _as_csv(data, include_timestamps)
    if fmt == "md":
        return _as_markdown(data, include_timestamps)
    return _as_text(data, include_timestamps)


def _as_text(data: Dict[str, Any], include_timestamps: bool) -> str:
    out = io.StringIO()
    meta = data.get("session")
    if meta:
        out.write(f"Session: {meta['title'] or meta['id']}\n")
        out.write(f"Created: {meta['created_at']}\n")
        out.write(f"Turn Count: {meta['turn_count']}\n\n")
        out.write("=" * 50 + "\n\n")
    for msg in data["messages"]:
        out.write(SPEAKERS.get(msg["model_type"], "System"))
        if include_timestamps and msg.get("created_at"):
            out.write(f" ({msg['created_at']})")
        out.write(":\n")
        out.write(msg["content"] + "\n\n")
    return out.getvalue()


def _as_markdown(data: Dict[str, Any], include_timestamps: bool) -> str:
    out = io.StringIO()
    meta = data.get("session")
    if meta:
        out.write(f"# {meta['title'] or 'AI Steering Session'}\n\n")
        out.write(f"**Session ID:** {meta['id']}\n")
        out.write(f"**Created:** {meta['created_at']}\n")
        out.write(f"**Turn Count:** {meta['turn_count']}\n\n")
        out.write("---\n\n")
    for msg in data["messages"]:
        out.write(f"**{SPEAKERS.get(msg['model_type'], 'System')}**")
        if include_timestamps and msg.get("created_at"):
            out.write(f" *({msg['created_at']})*")
        out.write("\n\n")
        out.write(msg["content"] + "\n\n")
        out.write("---\n\n")
    return out.getvalue()


def _as_csv(data: Dict[str, Any], include_timestamps: bool) -> str:
    out = io.StringIO()
    writer = csv.writer(out, quoting=csv.QUOTE_NONNUMERIC, lineterminator="\n")
    headers = ["Index", "Speaker", "Content"]
    if include_timestamps:
        headers.append("Timestamp")
    headers.append("Model Type")
    writer.writerow(headers)
    for index, msg in enumerate(data["messages"], start=1):
        row: List[Any] = [index, SPEAKERS.get(msg["model_type"], "System"), msg["content"]]
        if include_timestamps:
            row.append(msg.get("created_at") or "")
        row.append(msg["model_type"])
        writer.writerow(row)
    return out.getvalue()


def parse_transcript(raw: str | Dict[str, Any], session_id: str) -> List[Message]:
    """解析 JSON 导出内容，返回绑定到 session_id 的消息（保持原顺序）。"""

    if isinstance(raw, str):
        try:
            data = json.loads(raw)
        except ValueError as e:
            raise ValidationError(code="INVALID_TRANSCRIPT", message=f"Transcript is not valid JSON: {e}")
    else:
        data = raw
    items: Optional[list] = data.get("messages") if isinstance(data, dict) else None
    if not isinstance(items, list):
        raise ValidationError(code="INVALID_TRANSCRIPT", message="Transcript has no messages list")

    messages: List[Message] = []
    for idx, item in enumerate(items):
        try:
            model_type = item["model_type"]
            created_at = datetime.fromisoformat(str(item["created_at"]).replace("Z", "+00:00"))
            msg_id = str(item["id"])
        except (KeyError, TypeError, ValueError) as e:
            raise ValidationError(
                code="INVALID_TRANSCRIPT",
                message=f"Message #{idx} is missing id/model_type/created_at: {e}",
            )
        if model_type not in MODEL_TYPES:
            raise ValidationError(
                code="INVALID_TRANSCRIPT",
                message=f"Message #{idx} has unknown model_type {model_type!r}",
            )
        messages.append(
            Message(
                id=msg_id,
                session_id=session_id,
                model_type=model_type,
                content=str(item.get("content") or ""),
                created_at=created_at,
            )
        )
    return messages
