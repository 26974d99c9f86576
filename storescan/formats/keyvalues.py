"""
Valve KeyValues text parsing (appmanifest_*.acf, libraryfolders.vdf).

Wraps the ValvePython ``vdf`` library. Store-written files are not always
well formed (truncated writes, stray braces), so instead of failing the whole
file the text is repaired and re-parsed until a best-effort tree comes out.
"""
import logging
from typing import Any, Dict, Iterator, List, Optional, Tuple

import vdf

logger = logging.getLogger(__name__)

# Upper bound on repair passes; each pass either drops lines or adds a brace
MAX_REPAIR_PASSES = 64


class KeyValueNode:
    """A parsed section. Lookups are case-insensitive, duplicate keys keep the last value."""

    def __init__(self, values: Optional[Dict[str, Any]] = None):
        self._values = values or {}
        self._index: Dict[str, Any] = {}
        for key, value in self._values.items():
            self._index[str(key).lower()] = value

    def get_string(self, key: str, default: Optional[str] = None) -> Optional[str]:
        value = self._index.get(key.lower())
        if isinstance(value, str):
            return value
        return default

    def get_section(self, key: str) -> Optional["KeyValueNode"]:
        value = self._index.get(key.lower())
        if isinstance(value, dict):
            return KeyValueNode(value)
        return None

    def children(self) -> List[Tuple[str, "KeyValueNode"]]:
        """Child sections in file order."""
        return [(key, KeyValueNode(value)) for key, value in self._values.items()
                if isinstance(value, dict)]

    def strings(self) -> List[Tuple[str, str]]:
        """Scalar key/value pairs in file order."""
        return [(key, value) for key, value in self._values.items() if isinstance(value, str)]

    def to_dict(self) -> Dict[str, Any]:
        return self._values

    def __contains__(self, key: str) -> bool:
        return key.lower() in self._index

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __bool__(self) -> bool:
        return bool(self._values)

    def __repr__(self) -> str:
        return f"KeyValueNode({self._values!r})"


def _split_line(line: str) -> Optional[List[str]]:
    """Tokens of one line outside comments. None when a quote is left open."""
    tokens: List[str] = []
    i = 0
    n = len(line)
    while i < n:
        ch = line[i]
        if ch.isspace():
            i += 1
        elif line.startswith("//", i):
            break
        elif ch in "{}":
            tokens.append(ch)
            i += 1
        elif ch == '"':
            j = i + 1
            while j < n and line[j] != '"':
                j += 2 if line[j] == "\\" else 1
            if j >= n:
                return None
            tokens.append(line[i:j + 1])
            i = j + 1
        else:
            j = i
            while j < n and not line[j].isspace() and line[j] not in '"{}' and not line.startswith("//", j):
                j += 1
            tokens.append(line[i:j])
            i = j
    return tokens


def normalize_lines(text: str) -> List[str]:
    """Rewrite text so every brace and every key/value pair sits on its own line.

    ``vdf`` reads one statement per line and ignores anything after it, so
    inline sections like ``"AppState" { "appid" "480" }`` would lose data.
    Lines with an unterminated quote are kept as they are.
    """
    out: List[str] = []
    for line in text.lstrip("\ufeff").splitlines():
        tokens = _split_line(line)
        if tokens is None:
            out.append(line)
            continue
        pending: List[str] = []
        for token in tokens:
            if token in ("{", "}"):
                if pending:
                    out.append(" ".join(pending))
                    pending = []
                out.append(token)
            elif token.startswith("[") and token.endswith("]"):
                # platform conditionals such as [$WIN32]; vdf ignores them
                continue
            else:
                pending.append(token)
                if len(pending) == 2:
                    out.append(" ".join(pending))
                    pending = []
        if pending:
            out.append(" ".join(pending))
    return out


def parse_text(text: str) -> KeyValueNode:
    """Parse KeyValues text, repairing unbalanced braces and broken lines.

    Args:
        text: File contents.

    Returns:
        Root node. Empty when nothing could be recovered.
    """
    lines = normalize_lines(text)
    closers = 0

    for _ in range(MAX_REPAIR_PASSES):
        candidate = "\n".join(lines + ["}"] * closers)
        try:
            data = vdf.loads(candidate, mapper=dict, merge_duplicate_keys=False)
            if closers:
                logger.debug(f"[KeyValues] Recovered by appending {closers} closing brace(s)")
            return KeyValueNode(data)
        except SyntaxError as e:
            message = str(e.msg or e)
            lineno = e.lineno or 0

            if "unclosed" in message:
                closers += 1
            elif "closing" in message:
                if lineno > len(lines):
                    closers = max(0, closers - 1)
                else:
                    # Everything from the stray brace on is dropped
                    lines = lines[:max(0, lineno - 1)]
                    closers = 0
            elif 0 < lineno <= len(lines):
                lines = lines[:lineno - 1]
                closers = 0
            else:
                logger.debug(f"[KeyValues] Giving up on unrecoverable input: {message}")
                break

    return KeyValueNode({})


def parse_file(path: str) -> KeyValueNode:
    """Read and parse a KeyValues file.

    Raises:
        OSError: if the file cannot be read.
    """
    with open(path, "r", encoding="utf-8-sig", errors="replace") as f:
        return parse_text(f.read())
