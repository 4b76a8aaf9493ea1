"""Write generated artifacts to disk and package them as ZIP archives."""

from __future__ import annotations

import asyncio
import logging
import shutil
import time
from pathlib import Path

import pyzipper

from transcript_engine.utils.filenames import sanitize_filename

logger = logging.getLogger(__name__)


def _collect_relative_files(root: Path) -> list[Path]:
  """Collect file-only relative paths under root in stable order."""
  files: list[Path] = []
  for path in sorted(root.rglob("*")):
    if path.is_file():
      files.append(path.relative_to(root))
  return files


def _zip_files(*, output_path: Path, input_root: Path, relative_paths: list[Path]) -> None:
  """Create a deflated zip with an explicit file list rooted at input_root."""
  tmp_path = output_path.with_suffix(".zip.tmp")
  with pyzipper.ZipFile(tmp_path, mode="w", compression=pyzipper.ZIP_DEFLATED, compresslevel=9) as archive:
    for rel_path in relative_paths:
      archive.write(input_root / rel_path, arcname=str(rel_path))
  tmp_path.replace(output_path)


class ArtifactWriter:
  """Own the output directory: one folder per job plus packaged archives."""

  def __init__(self, output_dir: Path) -> None:
    self._output_dir = output_dir

  @property
  def output_dir(self) -> Path:
    return self._output_dir

  def job_dir(self, job_id: str) -> Path:
    return self._output_dir / f"job_{sanitize_filename(job_id)}"

  def archive_name(self, job_id: str) -> str:
    return f"transcripts_{sanitize_filename(job_id)}.zip"

  async def write(self, job_id: str, filename: str, content: str) -> Path:
    target = self.job_dir(job_id) / filename

    def _write() -> None:
      target.parent.mkdir(parents=True, exist_ok=True)
      target.write_text(content, encoding="utf-8")

    await asyncio.to_thread(_write)
    return target

  def list_artifacts(self, job_id: str) -> list[Path]:
    root = self.job_dir(job_id)
    if not root.is_dir():
      return []
    return _collect_relative_files(root)

  async def package(self, job_id: str) -> Path | None:
    """Zip everything produced so far for the job; None when nothing exists yet."""
    root = self.job_dir(job_id)
    relative_paths = self.list_artifacts(job_id)
    if not relative_paths:
      return None
    output_path = self._output_dir / self.archive_name(job_id)
    await asyncio.to_thread(_zip_files, output_path=output_path, input_root=root, relative_paths=relative_paths)
    logger.info("Packaged %d artifacts for job %s into %s", len(relative_paths), job_id, output_path.name)
    return output_path

  def resolve_download(self, filename: str) -> Path | None:
    """Return the archive path for a bare ``.zip`` filename inside the output dir."""
    if Path(filename).name != filename or not filename.endswith(".zip"):
      return None
    path = self._output_dir / filename
    if not path.is_file():
      return None
    return path

  async def discard(self, job_id: str) -> None:
    """Remove the job's artifact folder and archive."""
    root = self.job_dir(job_id)
    archive = self._output_dir / self.archive_name(job_id)

    def _remove() -> None:
      shutil.rmtree(root, ignore_errors=True)
      archive.unlink(missing_ok=True)

    await asyncio.to_thread(_remove)

  def cleanup_stale(self, max_age_hours: float, *, now: float | None = None) -> int:
    """Delete files and folders in the output dir older than ``max_age_hours``."""
    if not self._output_dir.is_dir():
      return 0
    cutoff = (now if now is not None else time.time()) - max_age_hours * 3600
    removed = 0
    for entry in self._output_dir.iterdir():
      try:
        if entry.stat().st_mtime >= cutoff:
          continue
        if entry.is_dir():
          shutil.rmtree(entry)
        else:
          entry.unlink()
        removed += 1
      except OSError as exc:
        logger.warning("Could not remove stale temp entry %s: %s", entry, exc)
    if removed:
      logger.info("Removed %d stale temp entries from %s", removed, self._output_dir)
    return removed
