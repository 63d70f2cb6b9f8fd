"""端到端批处理：尺寸规划、失败隔离、并发与汇总。"""

from __future__ import annotations

import csv
import threading
from pathlib import Path

import pytest

from conftest import FakeMagick, make_engine, touch
from image_thumbnailer.core.config import JobConfig
from image_thumbnailer.core.exceptions import InvalidConfigurationError, ProcessingAborted, SourcePathInvalid
from image_thumbnailer.core.models import ConversionFailure, FailureKind, ImageStatus
from image_thumbnailer.core.progress import ProgressUpdate
from image_thumbnailer.processing.pipeline import process_batch

ALL_SIZES = [2500, 2000, 1500, 1000, 750, 500, 250]


def make_config(source: Path, fmt: str = "png", **overrides) -> JobConfig:
    options = {"max_workers": 1, "retry_backoff": 0.0}
    options.update(overrides)
    return JobConfig(source_dir=source, output_format=fmt, **options)


def test_large_png_gets_all_sizes(source_dir: Path) -> None:
    touch(source_dir / "mountain.png")
    fake = FakeMagick({"mountain.png": (3000, 2000)})

    summary = process_batch(make_config(source_dir, "png"), engine=make_engine(fake))

    report = summary.reports[0]
    assert report.status is ImageStatus.DONE
    assert [result.target_size for result in report.results] == ALL_SIZES
    for size in ALL_SIZES:
        assert (source_dir / "PNG" / f"{size}px" / f"mountain-{size}px.png").exists()
    assert summary.total_images == 1
    assert summary.total_thumbnails == 7


def test_small_jpg_gets_only_smaller_sizes(source_dir: Path) -> None:
    touch(source_dir / "cat.jpeg")
    fake = FakeMagick({"cat.jpeg": (800, 600)})

    summary = process_batch(make_config(source_dir, "jpg"), engine=make_engine(fake))

    assert summary.total_thumbnails == 3
    assert sorted(p.name for p in (source_dir / "JPG").iterdir()) == ["250px", "500px", "750px"]
    assert (source_dir / "JPG" / "750px" / "cat-750px.jpg").exists()
    assert all(call[-1].startswith("jpeg:") for call in fake.transform_calls)


def test_tiny_image_is_skipped_not_failed(source_dir: Path) -> None:
    touch(source_dir / "icon.gif")
    fake = FakeMagick({"icon.gif": (250, 120)})

    summary = process_batch(make_config(source_dir, "gif"), engine=make_engine(fake))

    assert summary.reports[0].status is ImageStatus.SKIPPED
    assert summary.count(ImageStatus.FAILED) == 0
    assert fake.transform_calls == []


def test_invalid_dimensions_fail_the_image_without_jobs(source_dir: Path) -> None:
    touch(source_dir / "broken.png")
    touch(source_dir / "empty.png")
    touch(source_dir / "ok.png")
    fake = FakeMagick({"empty.png": "", "ok.png": (600, 400)})

    summary = process_batch(make_config(source_dir), engine=make_engine(fake))

    by_name = {report.source.source_path.name: report for report in summary.reports}
    assert by_name["broken.png"].status is ImageStatus.FAILED
    assert by_name["broken.png"].error.startswith("InvalidDimensions")
    assert by_name["empty.png"].status is ImageStatus.FAILED
    assert by_name["ok.png"].status is ImageStatus.DONE
    assert len(fake.transform_calls) == 2


def test_one_failed_size_does_not_stop_siblings(source_dir: Path) -> None:
    touch(source_dir / "a.png")
    touch(source_dir / "b.png")
    fake = FakeMagick({"a.png": (3000, 2000), "b.png": (1200, 1200)}, fail_sizes=[1000])

    summary = process_batch(make_config(source_dir), engine=make_engine(fake))

    first, second = summary.reports
    assert first.status is ImageStatus.FAILED
    assert first.created == 6
    assert [failure.target_size for failure in first.failures] == [1000]
    assert first.failures[0].kind is FailureKind.ENGINE_NON_ZERO_EXIT
    assert second.created == 3
    assert summary.total_thumbnails == 9
    assert summary.failed_thumbnails == 2
    assert len(fake.transform_calls) == 7 + 4


def test_thumbnail_count_equals_successful_results(source_dir: Path) -> None:
    for name in ("a.png", "b.png", "c.png"):
        touch(source_dir / name)
    fake = FakeMagick(
        {"a.png": (3000, 2000), "b.png": (900, 100), "c.png": (2100, 10)},
        no_output_sizes=[500],
        raise_sizes=[2000],
    )

    summary = process_batch(make_config(source_dir), engine=make_engine(fake))

    successes = sum(
        1 for report in summary.reports for result in report.results if not isinstance(result, ConversionFailure)
    )
    assert summary.total_thumbnails == successes == 5 + 2 + 4


def test_parallel_matches_sequential(tmp_path: Path) -> None:
    dims = {f"img{i}.png": (3000 - i * 400, 1000) for i in range(6)}

    summaries = []
    for workers in (1, 4):
        root = tmp_path / f"run{workers}"
        for name in dims:
            touch(root / name)
        fake = FakeMagick(dims, fail_sizes=[750])
        summaries.append(process_batch(make_config(root, max_workers=workers), engine=make_engine(fake)))

    sequential, parallel = summaries
    assert parallel.total_thumbnails == sequential.total_thumbnails
    assert parallel.failed_thumbnails == sequential.failed_thumbnails
    assert [r.source.source_path.name for r in parallel.reports] == [
        r.source.source_path.name for r in sequential.reports
    ]
    for seq_report, par_report in zip(sequential.reports, parallel.reports):
        assert [r.target_size for r in par_report.results] == [r.target_size for r in seq_report.results]


def test_rerun_ignores_generated_thumbnails(source_dir: Path) -> None:
    touch(source_dir / "tree.webp")
    dims = {"tree.webp": (1600, 1200)}

    first = process_batch(make_config(source_dir, "webp"), engine=make_engine(FakeMagick(dims)))
    second = process_batch(make_config(source_dir, "webp"), engine=make_engine(FakeMagick(dims)))

    assert first.total_images == second.total_images == 1
    assert second.total_thumbnails == first.total_thumbnails == 5


def test_empty_directory_finishes_with_nothing_to_do(source_dir: Path) -> None:
    updates: list[ProgressUpdate] = []

    summary = process_batch(make_config(source_dir), engine=make_engine(FakeMagick()), progress_callback=updates.append)

    assert summary.total_images == 0
    assert summary.total_thumbnails == 0
    assert updates and updates[0].total == 0
    assert updates[0].status == "done"


def test_progress_reports_every_image(source_dir: Path) -> None:
    touch(source_dir / "a.png")
    touch(source_dir / "b.png")
    updates: list[ProgressUpdate] = []
    fake = FakeMagick({"a.png": (600, 600), "b.png": (100, 100)})

    process_batch(make_config(source_dir, max_workers=2), engine=make_engine(fake), progress_callback=updates.append)

    reported = [update.report.source.source_path.name for update in updates if update.report]
    assert sorted(reported) == ["a.png", "b.png"]
    assert updates[-1].completed == 2
    assert updates[0].status == "running"
    assert updates[-1].status == "done"


def test_unsupported_files_are_listed(source_dir: Path) -> None:
    touch(source_dir / "diagram.wmf")

    summary = process_batch(make_config(source_dir), engine=make_engine(FakeMagick()))

    assert summary.total_images == 0
    assert [item.source_path.name for item in summary.unsupported] == ["diagram.wmf"]


def test_csv_report_is_written(source_dir: Path, tmp_path: Path) -> None:
    touch(source_dir / "a.png")
    report_path = tmp_path / "reports" / "run.csv"
    fake = FakeMagick({"a.png": (800, 800)}, fail_sizes=[500])

    process_batch(make_config(source_dir, report_path=report_path), engine=make_engine(fake))

    with report_path.open("r", encoding="utf-8", newline="") as handle:
        rows = list(csv.DictReader(handle))
    assert [row["status"] for row in rows] == ["created", "engine-non-zero-exit", "created"]
    assert rows[1]["target_size"] == "500"
    assert "500x500>" in rows[1]["command"]


def test_cancellation_aborts_batch(source_dir: Path) -> None:
    touch(source_dir / "a.png")
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(ProcessingAborted):
        process_batch(make_config(source_dir), engine=make_engine(FakeMagick()), cancel_event=cancel)


def test_cancellation_mid_run_in_parallel_mode(source_dir: Path) -> None:
    for i in range(5):
        touch(source_dir / f"img{i}.png")
    updates: list[ProgressUpdate] = []
    cancel = threading.Event()

    def stop_after_first(update: ProgressUpdate) -> None:
        updates.append(update)
        if update.report is not None:
            cancel.set()

    fake = FakeMagick({f"img{i}.png": (3000, 3000) for i in range(5)})

    with pytest.raises(ProcessingAborted):
        process_batch(
            make_config(source_dir, max_workers=2),
            engine=make_engine(fake),
            progress_callback=stop_after_first,
            cancel_event=cancel,
        )
    assert updates[-1].status == "aborted"


def test_invalid_source_raises(tmp_path: Path) -> None:
    with pytest.raises(SourcePathInvalid):
        process_batch(make_config(tmp_path / "missing"), engine=make_engine(FakeMagick()))


def test_invalid_configuration_raises(source_dir: Path) -> None:
    with pytest.raises(InvalidConfigurationError):
        process_batch(make_config(source_dir, "tga"), engine=make_engine(FakeMagick()))
    with pytest.raises(InvalidConfigurationError):
        process_batch(make_config(source_dir, max_workers=0), engine=make_engine(FakeMagick()))
