"""Artifact naming and on-disk packaging."""

from __future__ import annotations

import os
import random
import time
from datetime import date

import pytest
import pyzipper

from transcript_engine.jobs.models import GenerationUnit
from transcript_engine.services.artifacts import ArtifactWriter
from transcript_engine.utils.filenames import build_artifact_filename, extract_participants, random_recent_date, sanitize_filename


def _unit(**overrides) -> GenerationUnit:
  values = {"index": 0, "kind": "single", "coach": "Maria Lopez", "client": "Tom O'Neil", "location": "Tampa, FL", "niche": "wholesaling"}
  values.update(overrides)
  return GenerationUnit(**values)


def test_sanitize_filename_collapses_unsafe_runs() -> None:
  assert sanitize_filename("Tom O'Neil  Jr.") == "tom_o_neil_jr_"
  assert sanitize_filename("ok-name_1") == "ok-name_1"


def test_participants_come_from_header_lines() -> None:
  text = "# Session\n**Coach:** Dana Fox\n**Client:** Eli Park\n"

  assert extract_participants(text) == ("Dana Fox", "Eli Park")
  assert extract_participants("no header", coach="A", client="B") == ("A", "B")


def test_single_filename_uses_transcript_names() -> None:
  name = build_artifact_filename(_unit(), "**Coach:** Dana Fox\n**Client:** Eli Park", 7, date_str="2025-02-01")

  assert name == "dana_fox_eli_park_2025-02-01_7.md"


def test_series_filename_carries_series_and_episode() -> None:
  unit = _unit(kind="series", series_id="2", episode_number=3, total_episodes=4)

  name = build_artifact_filename(unit, "no header here", 12, date_str="2025-02-01")

  assert name == "maria_lopez_tom_o_neil_2025-02-01_12_series2_ep3.md"


def test_random_recent_date_stays_within_a_year() -> None:
  rng = random.Random(7)
  today = date(2025, 6, 15)

  for _ in range(50):
    picked = date.fromisoformat(random_recent_date(today=today, rng=rng))
    assert date(2024, 6, 15) <= picked <= today


def test_random_recent_date_handles_leap_day() -> None:
  picked = date.fromisoformat(random_recent_date(today=date(2024, 2, 29), rng=random.Random(1)))

  assert date(2023, 2, 28) <= picked <= date(2024, 2, 29)


@pytest.mark.anyio
async def test_package_zips_everything_written(tmp_path) -> None:
  writer = ArtifactWriter(tmp_path)
  await writer.write("job 1", "a.md", "first")
  await writer.write("job 1", "b.md", "second")

  archive = await writer.package("job 1")

  assert archive == tmp_path / "transcripts_job_1.zip"
  with pyzipper.ZipFile(archive) as zipped:
    assert sorted(zipped.namelist()) == ["a.md", "b.md"]
    assert zipped.read("b.md").decode() == "second"


@pytest.mark.anyio
async def test_package_without_artifacts_returns_none(tmp_path) -> None:
  assert await ArtifactWriter(tmp_path).package("empty") is None


@pytest.mark.anyio
async def test_resolve_download_only_accepts_bare_archive_names(tmp_path) -> None:
  writer = ArtifactWriter(tmp_path)
  await writer.write("job-1", "a.md", "text")
  await writer.package("job-1")

  assert writer.resolve_download("transcripts_job-1.zip") == tmp_path / "transcripts_job-1.zip"
  assert writer.resolve_download("../transcripts_job-1.zip") is None
  assert writer.resolve_download("job_job-1") is None
  assert writer.resolve_download("missing.zip") is None


@pytest.mark.anyio
async def test_discard_removes_folder_and_archive(tmp_path) -> None:
  writer = ArtifactWriter(tmp_path)
  await writer.write("job-1", "a.md", "text")
  await writer.package("job-1")

  await writer.discard("job-1")

  assert list(tmp_path.iterdir()) == []
  await writer.discard("job-1")


def test_cleanup_stale_removes_only_old_entries(tmp_path) -> None:
  old_dir = tmp_path / "job_old"
  old_dir.mkdir()
  (old_dir / "a.md").write_text("x")
  old_zip = tmp_path / "transcripts_old.zip"
  old_zip.write_bytes(b"zip")
  fresh = tmp_path / "transcripts_new.zip"
  fresh.write_bytes(b"zip")
  two_hours_ago = time.time() - 7200
  os.utime(old_dir, (two_hours_ago, two_hours_ago))
  os.utime(old_zip, (two_hours_ago, two_hours_ago))

  removed = ArtifactWriter(tmp_path).cleanup_stale(1)

  assert removed == 2
  assert [path.name for path in tmp_path.iterdir()] == ["transcripts_new.zip"]


def test_cleanup_stale_tolerates_missing_directory(tmp_path) -> None:
  assert ArtifactWriter(tmp_path / "absent").cleanup_stale(1) == 0
