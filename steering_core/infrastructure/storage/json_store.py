import json
import os
import shutil
import threading
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Any, List, Optional, Set
from uuid import uuid4

from steering_core.config.settings import settings
from steering_core.domain.session import Configuration, Message, Session
from steering_core.domain.exceptions import PersistenceError, SessionNotFoundError


def _iso(dt: datetime) -> str:
    return dt.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_dt(value: Any) -> datetime:
    return datetime.fromisoformat(str(value).replace("Z", "+00:00"))


class JsonSessionStore:
    """基于 JSON 文件的 SessionStore 实现。

    目录结构：
        <root>/configurations.json          全部配置（按 owner 过滤）
        <root>/sessions/<id>/meta.json      会话元数据
        <root>/sessions/<id>/messages.jsonl 追加写的消息

    所有写操作都在同一把锁内完成，激活新配置时“停用旧配置 + 插入新配置”
    是一次读改写，保证同一 owner 至多一个 is_active 配置。
    """

    def __init__(self, root: str | Path | None = None):
        self._root = Path(root or settings.storage_root).resolve()
        self._sessions_root = self._root / "sessions"
        self._config_path = self._root / "configurations.json"
        self._lock = threading.RLock()
        self._message_ids: Dict[str, Set[str]] = {}
        self._sessions_root.mkdir(parents=True, exist_ok=True)

    # ---- 配置 ----

    def activate_configuration(
        self,
        owner_id: str,
        provider: str,
        api_key: str,
        model_a: str,
        model_b: str,
    ) -> Configuration:
        with self._lock:
            rows = self._read_configs()
            for row in rows:
                if row["owner_id"] == owner_id:
                    row["is_active"] = False
            config = Configuration(
                id=f"cfg-{uuid4().hex}",
                owner_id=owner_id,
                provider=provider,
                api_key=api_key,
                model_a=model_a,
                model_b=model_b,
                is_active=True,
                created_at=datetime.now(timezone.utc),
            )
            rows.append(self._config_to_dict(config))
            self._atomic_write(self._config_path, rows)
            return config

    def get_active_configuration(self, owner_id: str) -> Optional[Configuration]:
        for config in self.list_configurations(owner_id):
            if config.is_active:
                return config
        return None

    def list_configurations(self, owner_id: str) -> List[Configuration]:
        with self._lock:
            rows = self._read_configs()
        return [self._to_config(r) for r in rows if r["owner_id"] == owner_id]

    # ---- 会话 ----

    def create_session(self, owner_id: str, configuration_id: str, title: Optional[str] = None) -> Session:
        now = datetime.now(timezone.utc)
        session = Session(
            id=f"s-{uuid4().hex}",
            owner_id=owner_id,
            configuration_id=configuration_id,
            title=title or f"Session {now.astimezone().strftime('%Y-%m-%d %H:%M:%S')}",
            turn_count=0,
            is_paused=False,
            created_at=now,
        )
        with self._lock:
            sdir = self._sessions_root / session.id
            try:
                sdir.mkdir(parents=True, exist_ok=False)
            except OSError as e:
                raise PersistenceError(f"Failed to create session: {e}")
            self._write_session(session)
        return session

    def get_session(self, session_id: str) -> Optional[Session]:
        if session_id in ("", ".", "..") or Path(session_id).name != session_id:
            return None
        meta_path = self._sessions_root / session_id / "meta.json"
        if not meta_path.exists():
            return None
        try:
            data = json.loads(meta_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Failed to read session {session_id}: {e}")
        return self._to_session(data)

    def list_sessions(self, owner_id: str, query: Optional[str] = None) -> List[Session]:
        needle = (query or "").strip().lower()
        items: List[Session] = []
        with self._lock:
            for sdir in self._sessions_root.glob("*/"):
                session = self.get_session(sdir.name)
                if session is None or session.owner_id != owner_id:
                    continue
                if needle and needle not in session.title.lower() and needle not in session.id.lower():
                    continue
                items.append(session)
        # 新会话在前
        items.sort(key=lambda s: s.created_at, reverse=True)
        return items

    def delete_session(self, session_id: str) -> None:
        with self._lock:
            self._require_session(session_id)
            try:
                shutil.rmtree(self._sessions_root / session_id)
            except OSError as e:
                raise PersistenceError(f"Failed to delete session {session_id}: {e}")
            self._message_ids.pop(session_id, None)

    def set_paused(self, session_id: str, paused: bool) -> Session:
        with self._lock:
            session = self._require_session(session_id)
            session.is_paused = paused
            self._write_session(session)
            return session

    def set_turn_count(self, session_id: str, turn_count: int) -> Session:
        with self._lock:
            session = self._require_session(session_id)
            session.turn_count = turn_count
            self._write_session(session)
            return session

    def increment_turn_count(self, session_id: str) -> Session:
        with self._lock:
            session = self._require_session(session_id)
            session.turn_count += 1
            self._write_session(session)
            return session

    # ---- 消息 ----

    def add_message(self, message: Message) -> None:
        msgs_path = self._sessions_root / message.session_id / "messages.jsonl"
        with self._lock:
            self._require_session(message.session_id)
            known = self._known_ids(message.session_id)
            if message.id in known:
                return
            payload = {
                "id": message.id,
                "session_id": message.session_id,
                "model_type": message.model_type,
                "content": message.content,
                "created_at": _iso(message.created_at),
            }
            try:
                with msgs_path.open("a", encoding="utf-8") as f:
                    f.write(json.dumps(payload, ensure_ascii=False) + "\n")
            except OSError as e:
                raise PersistenceError(f"Failed to write message: {e}")
            known.add(message.id)

    def list_messages(self, session_id: str) -> List[Message]:
        with self._lock:
            items = self._read_messages(session_id)
        items.sort(key=lambda m: m.created_at)
        return items

    # ---- 内部 ----

    def _known_ids(self, session_id: str) -> Set[str]:
        """会话已写入的消息 ID，首次访问时从 JSONL 加载，之后随写入更新。"""
        ids = self._message_ids.get(session_id)
        if ids is None:
            ids = {m.id for m in self._read_messages(session_id)}
            self._message_ids[session_id] = ids
        return ids

    def _read_messages(self, session_id: str) -> List[Message]:
        msgs_path = self._sessions_root / session_id / "messages.jsonl"
        items: List[Message] = []
        if not msgs_path.exists():
            return items
        try:
            lines = msgs_path.read_text(encoding="utf-8").splitlines()
            for line in lines:
                if not line.strip():
                    continue
                data = json.loads(line)
                items.append(
                    Message(
                        id=data["id"],
                        session_id=data["session_id"],
                        model_type=data["model_type"],
                        content=data.get("content") or "",
                        created_at=_parse_dt(data["created_at"]),
                    )
                )
        except (OSError, ValueError, KeyError) as e:
            raise PersistenceError(f"Failed to read messages of session {session_id}: {e}")
        return items

    def _require_session(self, session_id: str) -> Session:
        session = self.get_session(session_id)
        if session is None:
            raise SessionNotFoundError(session_id)
        return session

    def _read_configs(self) -> List[Dict[str, Any]]:
        if not self._config_path.exists():
            return []
        try:
            return json.loads(self._config_path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise PersistenceError(f"Failed to read configurations: {e}")

    def _write_session(self, session: Session) -> None:
        obj = {
            "id": session.id,
            "owner_id": session.owner_id,
            "configuration_id": session.configuration_id,
            "title": session.title,
            "turn_count": session.turn_count,
            "is_paused": session.is_paused,
            "created_at": _iso(session.created_at),
        }
        self._atomic_write(self._sessions_root / session.id / "meta.json", obj)

    def _atomic_write(self, path: Path, obj: Any) -> None:
        tmp_path = path.parent / f"{path.stem}.{uuid4().hex}.json.tmp"
        try:
            tmp_path.write_text(json.dumps(obj, ensure_ascii=False), encoding="utf-8")
            os.replace(tmp_path, path)
        except OSError as e:
            raise PersistenceError(f"Failed to write {path.name}: {e}")

    @staticmethod
    def _config_to_dict(config: Configuration) -> Dict[str, Any]:
        return {
            "id": config.id,
            "owner_id": config.owner_id,
            "provider": config.provider,
            "api_key": config.api_key,
            "model_a": config.model_a,
            "model_b": config.model_b,
            "is_active": config.is_active,
            "created_at": _iso(config.created_at),
        }

    @staticmethod
    def _to_config(data: Dict[str, Any]) -> Configuration:
        return Configuration(
            id=data["id"],
            owner_id=data["owner_id"],
            provider=data["provider"],
            api_key=data["api_key"],
            model_a=data["model_a"],
            model_b=data["model_b"],
            is_active=bool(data.get("is_active")),
            created_at=_parse_dt(data["created_at"]),
        )

    @staticmethod
    def _to_session(data: Dict[str, Any]) -> Session:
        return Session(
            id=data["id"],
            owner_id=data["owner_id"],
            configuration_id=data["configuration_id"],
            title=data.get("title") or "",
            turn_count=int(data.get("turn_count", 0)),
            is_paused=bool(data.get("is_paused")),
            created_at=_parse_dt(data["created_at"]),
        )
