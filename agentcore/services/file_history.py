"""In-memory file history — recent versions a mutating tool produced, per path.

Invariants:
    - At most max_versions_per_path versions are kept per path; the oldest go first
    - Version numbers keep increasing after trimming (never reused)
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone

DEFAULT_MAX_VERSIONS_PER_PATH = 20


@dataclass(frozen=True)
class FileVersion:
    path: str
    before: str
    after: str
    version: int
    recorded_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class InMemoryFileHistory:
    """HistoryRecorder keeping recent versions in process memory."""

    def __init__(self, max_versions_per_path: int = DEFAULT_MAX_VERSIONS_PER_PATH) -> None:
        if max_versions_per_path < 1:
            raise ValueError("max_versions_per_path must be at least 1")
        self.max_versions_per_path = max_versions_per_path
        self._versions: dict[str, list[FileVersion]] = {}
        self._lock = asyncio.Lock()

    async def record(self, path: str, before: str, after: str) -> None:
        async with self._lock:
            versions = self._versions.setdefault(path, [])
            number = versions[-1].version + 1 if versions else 1
            versions.append(FileVersion(path, before, after, number))
            del versions[:-self.max_versions_per_path]

    def versions(self, path: str) -> list[FileVersion]:
        return list(self._versions.get(path, []))

    def paths(self) -> list[str]:
        return sorted(self._versions)

    def latest(self, path: str) -> FileVersion | None:
        versions = self._versions.get(path)
        return versions[-1] if versions else None
