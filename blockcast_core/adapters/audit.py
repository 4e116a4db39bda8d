# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.

from __future__ import annotations

import json
import logging
import threading
import time
from pathlib import Path
from typing import Any

from blockcast_core.schema.serialization import json_safe

logger = logging.getLogger(__name__)


class JsonlAuditSink:
    """
    Append-only audit log, one JSON object per line.

    Unlike Trace, the audit trail is always on and write failures propagate.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def record(self, kind: str, payload: dict[str, Any]) -> None:
        rec = {
            "ts_ms": int(time.time() * 1000),
            "kind": str(kind),
            "payload": json_safe(payload),
        }
        line = json.dumps(rec, ensure_ascii=False, sort_keys=True)
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with self.path.open("a", encoding="utf-8") as f:
                f.write(line + "\n")
        logger.debug("Audit record %s written to %s", kind, self.path)

    def read_all(self) -> list[dict[str, Any]]:
        if not self.path.exists():
            return []
        with self.path.open("r", encoding="utf-8") as f:
            return [json.loads(line) for line in f if line.strip()]
