"""
Guideline documents and the resolver that picks the ones relevant to a
piece of work.

Guidelines are curated rule documents consulted before drafting a plan or
executing a subtask. They live in guideline directories:
- Global: ~/.config/stepgate/guidelines/ (optional)
- Project: ./guidelines/ (or whatever guidelines.paths configures)

Each directory may carry a guidelines.yaml index:

    guidelines:
      - name: python-style
        file: python.md
        scope: ["python", "\\.py\\b"]
      - name: general
        file: general.md
        scope: []          # applies to everything

Markdown files not listed in the index are scoped to their own file stem
(python.md applies to contexts mentioning "python").
"""

import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, Sequence

import yaml

from stepgate.lib.errors import GuidelineUnavailable

logger = logging.getLogger(__name__)

GLOBAL_GUIDELINES_PATH = Path.home() / ".config" / "stepgate" / "guidelines"
INDEX_FILENAME = "guidelines.yaml"


@dataclass(frozen=True)
class GuidelineScope:
    """Applicability matcher over task/subtask descriptions.

    Patterns are case-insensitive regular expressions. An empty scope
    applies to every context with the lowest specificity.
    """
    patterns: tuple[str, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "patterns", tuple(self.patterns))

    def match(self, context: str) -> int | None:
        """Return match specificity (number of patterns hit), or None if no match."""
        if not self.patterns:
            return 0
        hits = sum(1 for p in self.patterns if re.search(p, context, re.IGNORECASE))
        return hits or None


@dataclass(frozen=True)
class GuidelineDocument:
    """A named guideline text with its applicability scope. Read-only."""
    name: str
    scope: GuidelineScope
    text: str
    source: str = ""  # Where the document came from (path), for display


class GuidelineStoreError(Exception):
    """The guideline store could not be read."""
    pass


class GuidelineStore(Protocol):
    """Read-only supplier of guideline documents."""

    def documents(self) -> list[GuidelineDocument]:
        """Return all known documents. Raises GuidelineStoreError if unreachable."""
        ...


@dataclass
class InMemoryGuidelineStore:
    """Store over a fixed list of documents."""
    docs: list[GuidelineDocument] = field(default_factory=list)

    def documents(self) -> list[GuidelineDocument]:
        return list(self.docs)


def _scope_from_index(raw, index_path: Path) -> GuidelineScope:
    if raw is None:
        return GuidelineScope()
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, list) or not all(isinstance(p, str) for p in raw):
        raise GuidelineStoreError(f"{index_path}: scope must be a string or list of strings")
    for pattern in raw:
        try:
            re.compile(pattern)
        except re.error as e:
            raise GuidelineStoreError(f"{index_path}: bad scope pattern {pattern!r}: {e}") from e
    return GuidelineScope(tuple(raw))


def _stem_scope(path: Path) -> GuidelineScope:
    words = re.split(r'[-_\s]+', path.stem)
    return GuidelineScope((r'\b' + r'[-_\s]?'.join(re.escape(w) for w in words if w) + r'\b',))


class DirectoryGuidelineStore:
    """Guideline documents read from directories of markdown files."""

    def __init__(self, paths: Sequence[Path], optional_paths: Sequence[Path] = ()):
        """
        Args:
            paths: Directories that must exist (missing means the store is unreachable)
            optional_paths: Directories read only if present (e.g. the global one)
        """
        self.paths = [Path(p) for p in paths]
        self.optional_paths = [Path(p) for p in optional_paths]

    def documents(self) -> list[GuidelineDocument]:
        docs = []
        for directory in self.optional_paths:
            if directory.is_dir():
                docs.extend(self._load_directory(directory))
        for directory in self.paths:
            if not directory.is_dir():
                raise GuidelineStoreError(f"Guideline directory not found: {directory}")
            docs.extend(self._load_directory(directory))
        return docs

    def _load_directory(self, directory: Path) -> list[GuidelineDocument]:
        index_path = directory / INDEX_FILENAME
        docs = []
        indexed_files = set()

        try:
            if index_path.exists():
                data = yaml.safe_load(index_path.read_text(encoding="utf-8")) or {}
                entries = data.get("guidelines", []) if isinstance(data, dict) else None
                if not isinstance(entries, list):
                    raise GuidelineStoreError(f"{index_path}: 'guidelines' must be a list")
                for entry in entries:
                    if not isinstance(entry, dict) or not isinstance(entry.get("file"), str):
                        raise GuidelineStoreError(f"{index_path}: each entry needs a 'file' string")
                    if entry.get("name") is not None and not isinstance(entry["name"], str):
                        raise GuidelineStoreError(f"{index_path}: 'name' must be a string in {entry['file']}")
                    doc_path = directory / entry["file"]
                    indexed_files.add(doc_path.name)
                    docs.append(GuidelineDocument(
                        name=entry.get("name") or doc_path.stem,
                        scope=_scope_from_index(entry.get("scope"), index_path),
                        text=doc_path.read_text(encoding="utf-8").strip(),
                        source=str(doc_path),
                    ))

            for doc_path in sorted(directory.glob("*.md")):
                if doc_path.name in indexed_files:
                    continue
                docs.append(GuidelineDocument(
                    name=doc_path.stem,
                    scope=_stem_scope(doc_path),
                    text=doc_path.read_text(encoding="utf-8").strip(),
                    source=str(doc_path),
                ))
        except yaml.YAMLError as e:
            raise GuidelineStoreError(f"Invalid guideline index {index_path}: {e}") from e
        except UnicodeDecodeError as e:
            raise GuidelineStoreError(f"Guidelines in {directory} are not valid UTF-8: {e}") from e
        except OSError as e:
            raise GuidelineStoreError(f"Cannot read guidelines in {directory}: {e}") from e

        return docs


@dataclass(frozen=True)
class GuidelineResolution:
    """Documents that apply to a context, most specific first."""
    context: str
    documents: tuple[GuidelineDocument, ...] = ()
    warning: GuidelineUnavailable | None = None

    @property
    def consulted(self) -> bool:
        """False when the store was unreachable and nothing could be checked."""
        return self.warning is None

    @property
    def names(self) -> list[str]:
        return [d.name for d in self.documents]


class GuidelineResolver:
    """Matches a work context against the store's documents.

    Pure lookup: safe to share between sessions without locking.
    """

    def __init__(self, store: GuidelineStore):
        self.store = store

    def resolve(self, context: str) -> GuidelineResolution:
        try:
            docs = self.store.documents()
        except GuidelineStoreError as e:
            warning = GuidelineUnavailable(str(e))
            logger.warning(f"[GUIDELINES] {warning}")
            return GuidelineResolution(context=context, warning=warning)

        matched = []
        for doc in docs:
            specificity = doc.scope.match(context)
            if specificity is not None:
                matched.append((specificity, doc))

        matched.sort(key=lambda item: (-item[0], item[1].name, item[1].source))
        documents = tuple(doc for _, doc in matched)
        logger.debug(f"[GUIDELINES] {len(documents)} of {len(docs)} apply")
        return GuidelineResolution(context=context, documents=documents)
