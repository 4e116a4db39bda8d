# Copyright (C) 2025 Ivan Bondarenko
#
# This file is part of BlockCast Engine.
#
# BlockCast Engine is free software: you can redistribute it and/or modify
# it under the terms of the GNU Affero General Public License as published
# by the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# BlockCast Engine is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE. See the
# GNU Affero General Public License for more details.
#
# You should have received a copy of the GNU Affero General Public License
# along with BlockCast Engine. If not, see <https://www.gnu.org/licenses/>.

import os
from datetime import datetime, timezone


def is_local_run() -> bool:
    """
    Best-effort detection of local/dev runs without requiring extra configuration.
    A local ledger node or an explicit env marker both count.
    """
    if os.getenv("BLOCKCAST_LEDGER_EMULATOR_HOST"):
        return True

    env = (os.getenv("BLOCKCAST_ENV") or os.getenv("ENV") or "").strip().lower()
    if env in ("local", "dev", "development"):
        return True

    return False


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def ensure_utc(value: datetime) -> datetime:
    """Naive datetimes are treated as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def hours_between(start: datetime, end: datetime) -> float:
    return (ensure_utc(end) - ensure_utc(start)).total_seconds() / 3600.0
