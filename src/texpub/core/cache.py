"""Incremental build cache: compiled JSON records plus a source-hash metadata file.

One CacheManager owns the metadata mapping for a cache directory. Readers use
the in-memory copy; every update goes through a single asyncio.Lock and is
persisted with an atomic replace, so concurrent compile tasks never lose an
entry. An unreadable metadata file is treated as an empty cache.
"""

import asyncio
import logging
from pathlib import Path
from typing import Optional

from pydantic import ValidationError

from texpub.core.models import BuildStats, CacheEntry, CacheMetadata, CompiledDocument, utc_now
from texpub.core.utils.fs import relative_key, write_text_atomic
from texpub.core.utils.hashing import file_hash


logger = logging.getLogger(__name__)

META_FILE = ".cache-meta.json"


class CacheManager:

    def __init__(self, cache_dir: Path):
        self.cache_dir = Path(cache_dir)
        self.meta_file = self.cache_dir / META_FILE
        self._metadata: Optional[CacheMetadata] = None
        self._lock = asyncio.Lock()

    # --- metadata ---

    def _read_metadata(self) -> CacheMetadata:
        if not self.meta_file.exists():
            return CacheMetadata()
        try:
            return CacheMetadata.model_validate_json(self.meta_file.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, ValidationError) as e:
            logger.warning("Ignoring unreadable cache metadata %s: %s", self.meta_file, e)
            return CacheMetadata()

    @property
    def metadata(self) -> CacheMetadata:
        if self._metadata is None:
            self._metadata = self._read_metadata()
        return self._metadata

    def _persist(self) -> None:
        write_text_atomic(self.meta_file, self.metadata.model_dump_json(indent=2))

    def key_for(self, output: Path) -> str:
        return relative_key(output, self.cache_dir)

    # --- incremental checks ---

    def is_up_to_date(self, source: Path, output: Path) -> bool:
        """True only if output exists, is not older than source, and its recorded hash matches source."""
        source, output = Path(source), Path(output)
        try:
            if not output.exists():
                return False
            if output.stat().st_mtime < source.stat().st_mtime:
                return False
            entry = self.metadata.files.get(self.key_for(output))
            if entry is None:
                return False
            return file_hash(source) == entry.source_hash
        except OSError:
            return False

    # --- records ---

    async def save(self, output: Path, document: CompiledDocument) -> None:
        """Write the compiled record and upsert its metadata entry."""
        output = Path(output)
        write_text_atomic(output, document.model_dump_json(indent=2))
        async with self._lock:
            key = self.key_for(output)
            previous = self.metadata.files.get(key)
            created_at = document.created_at or (previous.created_at if previous else document.updated_at)
            self.metadata.files[key] = CacheEntry(
                source_hash=document.source_hash,
                created_at=created_at,
                updated_at=document.updated_at,
                id=document.id,
                title=document.title,
            )
            self._persist()

    def load(self, output: Path) -> Optional[CompiledDocument]:
        """Compiled record at output, or None if missing or unreadable."""
        try:
            return CompiledDocument.model_validate_json(Path(output).read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, ValidationError):
            return None

    async def update_metadata(self, stats: BuildStats) -> None:
        """Record build totals after a run."""
        async with self._lock:
            now = utc_now()
            meta = self.metadata
            meta.last_update = now
            meta.total_exercises = len(meta.files)
            meta.build_stats = stats.model_copy(update={"timestamp": now})
            self._persist()

    async def cleanup(self) -> int:
        """Drop entries whose compiled record no longer exists. Returns count removed."""
        async with self._lock:
            meta = self.metadata
            orphaned = [k for k in meta.files if not (self.cache_dir / k).exists()]
            for k in orphaned:
                del meta.files[k]
            meta.total_exercises = len(meta.files)
            self._persist()
        logger.info("Cache cleanup: %d orphaned entries removed", len(orphaned))
        return len(orphaned)

    def get_stats(self) -> dict:
        meta = self.metadata
        return {
            "total_files": len(meta.files),
            "last_update": meta.last_update,
            "version": meta.version,
            "build_stats": meta.build_stats.model_dump() if meta.build_stats else None,
        }

    def validate_integrity(self) -> dict:
        """Cross-check every entry against its record: id and source hash must agree."""
        issues: list[str] = []
        for key, entry in self.metadata.files.items():
            document = self.load(self.cache_dir / key)
            if document is None:
                issues.append(f"Cannot read cache file {key}")
                continue
            if document.id != entry.id:
                issues.append(f"Id mismatch in {key}: {document.id} vs {entry.id}")
            if document.source_hash and document.source_hash != entry.source_hash:
                issues.append(f"Source hash mismatch in {key}")
        return {"valid": not issues, "issues": issues, "total_files": len(self.metadata.files)}
