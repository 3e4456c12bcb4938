"""Persistence seam for direct-mode composition."""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import Protocol

from pydantic import BaseModel, ConfigDict, Field

from .exceptions import StoreUnavailableError
from .fragments import parse_document
from .merger import source_identity_of
from .models import SourceArtifactIdentity

logger = logging.getLogger(__name__)


class DocumentHandle(BaseModel):
    """A configuration item as held by the store."""

    model_config = ConfigDict(frozen=True)

    ci_unique_id: str = Field(..., description="AuthoringScopeId/LogicalName/Version")
    document: str = Field(..., description="Serialized configuration item document")


class ArtifactStore(Protocol):
    """Commit interface of the configuration management service."""

    def is_available(self, site_code: str) -> bool:
        """Whether the store can accept commits for ``site_code``."""
        ...

    def commit(self, handle: DocumentHandle, document: str, site_code: str) -> None:
        """Persist ``document`` as the new content of ``handle``."""
        ...


class FileArtifactStore:
    """Stores configuration items as ``<LogicalName>.xml`` files in a directory."""

    def __init__(self, root: Path) -> None:
        """Initialize store with its directory.

        Args:
            root: Directory holding the documents
        """
        self.root = Path(root)

    def is_available(self, site_code: str) -> bool:
        return bool(site_code) and self.root.is_dir()

    def _path_for(self, logical_name: str) -> Path:
        return self.root / f"{logical_name}.xml"

    def load(self, logical_name: str) -> DocumentHandle:
        """Load a configuration item by its logical name.

        Raises:
            StoreUnavailableError: If the document cannot be read
        """
        path = self._path_for(logical_name)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            msg = f"Failed to read configuration item {path}: {e}"
            raise StoreUnavailableError(msg) from e

        identity = source_identity_of(parse_document(text))
        return DocumentHandle(ci_unique_id=str(identity), document=text)

    def list_items(self) -> list[str]:
        """Logical names of the stored configuration items."""
        if not self.root.is_dir():
            return []
        return sorted(path.stem for path in self.root.glob("*.xml"))

    def commit(self, handle: DocumentHandle, document: str, site_code: str) -> None:
        """Replace the stored document atomically."""
        identity = SourceArtifactIdentity.parse(handle.ci_unique_id)
        path = self._path_for(identity.logical_name)
        tmp_name: str | None = None
        try:
            fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=".commit-", suffix=".xml")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(document)
            os.replace(tmp_name, path)
        except OSError as e:
            if tmp_name is not None:
                Path(tmp_name).unlink(missing_ok=True)
            msg = f"Failed to commit configuration item {path}: {e}"
            raise StoreUnavailableError(msg, details={"site_code": site_code}) from e
        logger.info("Committed %s to site %s", handle.ci_unique_id, site_code)
