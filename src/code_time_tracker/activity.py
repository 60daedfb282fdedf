"""Decide which editor events count as coding activity."""

from __future__ import annotations

import os
import re
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

PLAIN_TEXT = "Plain Text"

_LANGUAGES_BY_SUFFIX: dict[str, str] = {
    ".c": "C",
    ".h": "C",
    ".cc": "C++",
    ".cpp": "C++",
    ".hpp": "C++",
    ".cs": "C#",
    ".css": "CSS",
    ".dart": "Dart",
    ".go": "Go",
    ".groovy": "Groovy",
    ".html": "HTML",
    ".java": "Java",
    ".js": "JavaScript",
    ".jsx": "JavaScript",
    ".json": "JSON",
    ".kt": "Kotlin",
    ".kts": "Kotlin",
    ".lua": "Lua",
    ".md": "Markdown",
    ".php": "PHP",
    ".py": "Python",
    ".rb": "Ruby",
    ".rs": "Rust",
    ".scala": "Scala",
    ".sh": "Shell Script",
    ".sql": "SQL",
    ".swift": "Swift",
    ".toml": "TOML",
    ".ts": "TypeScript",
    ".tsx": "TypeScript",
    ".vue": "Vue",
    ".xml": "XML",
    ".yaml": "YAML",
    ".yml": "YAML",
}

_URL_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9+.-]*://")
_WRITE_BITS = stat.S_IWUSR | stat.S_IWGRP | stat.S_IWOTH


def resolve_language(path: Union[str, Path]) -> str:
    """Map a file name to the language display name used for sessions."""
    name = Path(path).name
    if name == "Dockerfile":
        return "Dockerfile"
    return _LANGUAGES_BY_SUFFIX.get(Path(name).suffix.lower(), PLAIN_TEXT)


@dataclass(frozen=True, slots=True)
class ActivityTarget:
    """The resource an editor event touched and the project it belongs to."""

    file_path: str
    project_path: str
    project_name: Optional[str] = None
    language: Optional[str] = None

    @property
    def project_key(self) -> str:
        return self.project_path

    @property
    def resolved_project_name(self) -> str:
        if self.project_name:
            return self.project_name
        return Path(self.project_path).name or self.project_path

    @property
    def resolved_language(self) -> str:
        return self.language or resolve_language(self.file_path)


def is_countable_activity(target: Optional[Union[ActivityTarget, str, Path]]) -> bool:
    """True only for an existing, writable file on the local file system."""
    if target is None:
        return False
    raw = target.file_path if isinstance(target, ActivityTarget) else target
    if not raw or _URL_PATTERN.match(str(raw)):
        return False
    path = Path(raw)
    try:
        if not path.is_file():
            return False
        # os.access ignores permission bits for privileged users.
        return bool(path.stat().st_mode & _WRITE_BITS) and os.access(path, os.W_OK)
    except OSError:
        return False
