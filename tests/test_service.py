from __future__ import annotations

import json
import threading
import time
from pathlib import Path

import pytest

from webp_batch.config import AppConfig, EncoderConfig, RuntimeConfig
from webp_batch.core import WebPConverter
from webp_batch.discovery import find_images
from webp_batch.encoders import EncodeError, EncoderAvailability
from webp_batch.errors import ConversionError, DiscoveryError
from webp_batch.models import ConversionOptions


class RecordingEncoder:
    """Writes a small fake WebP and tracks how many encodes overlap."""

    def __init__(self, name: str = "fake", *, available: bool = True, delay: float = 0.0) -> None:
        self.name = name
        self.available = available
        self.delay = delay
        self.probes = 0
        self.encoded: list[Path] = []
        self.active = 0
        self.max_active = 0
        self._lock = threading.Lock()

    def probe(self) -> bool:
        self.probes += 1
        return self.available

    def encode(self, source: Path, destination: Path, options: ConversionOptions) -> None:
        with self._lock:
            self.active += 1
            self.max_active = max(self.max_active, self.active)
        try:
            time.sleep(self.delay)
            destination.write_bytes(b"W" * 10)
            with self._lock:
                self.encoded.append(source)
        finally:
            with self._lock:
                self.active -= 1


def write_files(root: Path, names: list[str], payload: bytes = b"x" * 100) -> list[Path]:
    paths = []
    for name in names:
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(payload)
        paths.append(path)
    return paths


def test_batch_converts_three_pngs(make_image, tmp_path, pillow_config):
    src = tmp_path / "src"
    sizes = {"a.png": 100 * 1024, "b.png": 200 * 1024, "c.png": 50 * 1024}
    for name, size in sizes.items():
        make_image(src / name, size_bytes=size)
    expected_kb = sum((src / name).stat().st_size for name in sizes) / 1024

    converter = WebPConverter(pillow_config)
    report = converter.batch_convert(ConversionOptions(src=src, quality=80, threads=2))

    assert len(report.converted) == 3
    assert report.errors == ()
    assert report.skipped == ()
    assert report.original_kb == pytest.approx(expected_kb)
    assert report.original_kb == pytest.approx(350, rel=0.1)
    assert report.encoder == "pillow"
    for name in sizes:
        assert (src / name).exists()
        assert (src / name).with_suffix(".webp").exists()


def test_batch_records_corrupt_file_without_stopping(make_image, tmp_path, pillow_config):
    src = tmp_path / "src"
    make_image(src / "one.png")
    make_image(src / "sub" / "two.png")
    corrupt = src / "sub" / "broken.jpg"
    corrupt.write_bytes(b"\xff\xd8\xff\xe0 truncated")

    report = WebPConverter(pillow_config).batch_convert(ConversionOptions(src=src, threads=2))

    assert len(report.converted) == 2
    assert len(report.errors) == 1
    assert report.errors[0].file == str(corrupt)
    assert "broken.jpg" in report.errors[0].error
    assert not (src / "sub" / "broken.webp").exists()
    assert not report.ok


def test_batch_empty_directory(tmp_path, pillow_config):
    report = WebPConverter(pillow_config).batch_convert(ConversionOptions(src=tmp_path))
    assert report.converted == ()
    assert report.errors == ()
    assert report.savings == 0


def test_batch_missing_directory_is_fatal(tmp_path, pillow_config):
    with pytest.raises(DiscoveryError):
        WebPConverter(pillow_config).batch_convert(ConversionOptions(src=tmp_path / "nope"))


def test_every_discovered_image_yields_one_outcome(tmp_path):
    names = [f"dir{i % 3}/img{i}.png" for i in range(10)] + ["bad.jpg"]
    write_files(tmp_path, names)

    class FlakyEncoder(RecordingEncoder):
        def encode(self, source, destination, options):
            if source.name == "bad.jpg":
                raise EncodeError("cwebp exit code: 1", exit_code=1)
            super().encode(source, destination, options)

    encoder = FlakyEncoder()
    converter = WebPConverter(AppConfig(), external=encoder, fallback=RecordingEncoder("unused"))
    report = converter.batch_convert(ConversionOptions(src=tmp_path, threads=4))

    assert len(report.converted) + len(report.errors) == len(find_images(tmp_path))
    assert report.errors[0].error == "cwebp exit code: 1"


def test_concurrency_never_exceeds_thread_limit(tmp_path):
    write_files(tmp_path, [f"img{i}.png" for i in range(12)])
    encoder = RecordingEncoder(delay=0.02)
    converter = WebPConverter(AppConfig(), external=encoder, fallback=RecordingEncoder("unused"))

    report = converter.batch_convert(ConversionOptions(src=tmp_path, threads=3))

    assert len(report.converted) == 12
    assert 1 <= encoder.max_active <= 3


def test_single_thread_runs_in_discovery_order(tmp_path):
    paths = write_files(tmp_path, ["c.png", "a.png", "b/z.jpg"])
    encoder = RecordingEncoder()
    converter = WebPConverter(AppConfig(), external=encoder, fallback=RecordingEncoder("unused"))

    converter.batch_convert(ConversionOptions(src=tmp_path, threads=1))

    assert encoder.encoded == sorted(paths, key=lambda p: (len(p.relative_to(tmp_path).parts), p.name))


def test_probe_runs_once_per_converter(tmp_path):
    write_files(tmp_path, ["a.png", "b.png"])
    external = RecordingEncoder("cwebp")
    converter = WebPConverter(AppConfig(), external=external, fallback=RecordingEncoder("pillow"))
    assert converter.availability is EncoderAvailability.UNKNOWN

    first = converter.batch_convert(ConversionOptions(src=tmp_path, threads=2))
    second = converter.batch_convert(ConversionOptions(src=tmp_path, threads=2))

    assert external.probes == 1
    assert converter.availability is EncoderAvailability.AVAILABLE
    assert first.encoder == second.encoder == "cwebp"


def test_converters_do_not_share_probe_state(tmp_path):
    unavailable = WebPConverter(AppConfig(), external=RecordingEncoder(available=False))
    available = WebPConverter(AppConfig(), external=RecordingEncoder(available=True))
    assert unavailable.probe_availability() is False
    assert available.probe_availability() is True


def test_unavailable_external_falls_back_for_whole_batch(tmp_path):
    write_files(tmp_path, ["a.png", "b.jpeg"])
    external = RecordingEncoder("cwebp", available=False)
    fallback = RecordingEncoder("pillow")
    converter = WebPConverter(AppConfig(), external=external, fallback=fallback)

    report = converter.batch_convert(ConversionOptions(src=tmp_path, threads=2))

    assert report.encoder == "pillow"
    assert external.encoded == []
    assert len(fallback.encoded) == 2


def test_prefer_pillow_skips_probe(tmp_path):
    external = RecordingEncoder("cwebp")
    converter = WebPConverter(
        AppConfig(encoder=EncoderConfig(prefer="pillow")), external=external, fallback=RecordingEncoder("pillow")
    )
    assert converter.select_encoder().name == "pillow"
    assert external.probes == 0


def test_prefer_cwebp_without_binary_is_fatal(tmp_path):
    write_files(tmp_path, ["a.png"])
    converter = WebPConverter(
        AppConfig(encoder=EncoderConfig(prefer="cwebp")),
        external=RecordingEncoder("cwebp", available=False),
    )
    with pytest.raises(ConversionError) as exc:
        converter.batch_convert(ConversionOptions(src=tmp_path))
    assert exc.value.code == "ENCODER_UNAVAILABLE"


def test_overwrite_removes_original(make_image, tmp_path, pillow_config):
    source = make_image(tmp_path / "x.jpg")
    report = WebPConverter(pillow_config).batch_convert(ConversionOptions(src=tmp_path, overwrite=True))
    assert report.converted == (str(source),)
    assert not source.exists()
    assert (tmp_path / "x.webp").exists()


def test_flat_mode_collects_outputs(make_image, tmp_path, pillow_config):
    src = tmp_path / "src"
    make_image(src / "a" / "one.png")
    make_image(src / "b" / "two.PNG")
    out = tmp_path / "out"

    report = WebPConverter(pillow_config).batch_convert(ConversionOptions(src=src, flat=out, threads=2))

    assert len(report.converted) == 2
    assert sorted(p.name for p in out.iterdir()) == ["one.webp", "two.webp"]
    assert (src / "a" / "one.png").exists()


def test_delete_failure_reports_error_but_keeps_both_files(monkeypatch, make_image, tmp_path, pillow_config):
    source = make_image(tmp_path / "locked.png")
    original_unlink = Path.unlink

    def fake_unlink(self, missing_ok=False):
        if self == source:
            raise PermissionError(13, "Permission denied", str(self))
        return original_unlink(self, missing_ok=missing_ok)

    monkeypatch.setattr(Path, "unlink", fake_unlink)
    outcome = WebPConverter(pillow_config).convert_file(source, ConversionOptions(overwrite=True))

    assert outcome.success is False
    assert outcome.error_code == "DELETE_FAILED"
    assert source.exists()
    assert (tmp_path / "locked.webp").exists()


def test_convert_file_missing_input_does_not_raise(tmp_path, pillow_config):
    outcome = WebPConverter(pillow_config).convert_file(tmp_path / "gone.png", ConversionOptions())
    assert outcome.success is False
    assert outcome.error_code == "NOT_FOUND"
    assert outcome.original_size == 0


def test_convert_file_reports_sizes(make_image, tmp_path, pillow_config):
    source = make_image(tmp_path / "s.png", size_bytes=8192)
    outcome = WebPConverter(pillow_config).convert_file(source, ConversionOptions(quality=50))
    assert outcome.success is True
    assert outcome.original_size == source.stat().st_size
    assert outcome.output_size == (tmp_path / "s.webp").stat().st_size
    assert outcome.encoder == "pillow"


def test_rerun_produces_identical_output(make_image, tmp_path, pillow_config):
    make_image(tmp_path / "same.png", size_bytes=16384)
    options = ConversionOptions(src=tmp_path, quality=70)
    converter = WebPConverter(pillow_config)

    converter.batch_convert(options)
    first = (tmp_path / "same.webp").read_bytes()
    converter.batch_convert(options)

    assert (tmp_path / "same.webp").read_bytes() == first


def test_progress_and_run_log(tmp_path):
    src = tmp_path / "src"
    write_files(src, ["a.png", "b.png", "c.png"])
    log_file = tmp_path / "logs" / "run.jsonl"
    config = AppConfig(runtime=RuntimeConfig(log_file=log_file))
    converter = WebPConverter(config, external=RecordingEncoder("cwebp"))
    seen: list[tuple[int, int]] = []

    report = converter.batch_convert(
        ConversionOptions(src=src, threads=2),
        progress=lambda outcome, done, total: seen.append((done, total)),
    )

    assert seen == [(1, 3), (2, 3), (3, 3)]
    entries = [json.loads(line) for line in log_file.read_text(encoding="utf-8").splitlines()]
    assert len(entries) == 3
    assert {entry["status"] for entry in entries} == {"success"}
    assert {entry["batch_id"] for entry in entries} == {report.batch_id}
    assert all(entry["encoder"] == "cwebp" for entry in entries)


def test_unwritable_run_log_aborts_before_any_file(tmp_path):
    src = tmp_path / "src"
    originals = write_files(src, [f"i{i}.png" for i in range(4)])
    log_dir = tmp_path / "logs"
    log_dir.mkdir()
    encoder = RecordingEncoder("cwebp")
    converter = WebPConverter(AppConfig(runtime=RuntimeConfig(log_file=log_dir)), external=encoder)

    with pytest.raises(ConversionError) as exc:
        converter.batch_convert(ConversionOptions(src=src, overwrite=True, threads=2))

    assert exc.value.code == "LOG_FILE"
    assert encoder.encoded == []
    assert all(path.exists() for path in originals)
    assert list(src.glob("*.webp")) == []


def test_run_log_write_failure_keeps_report(monkeypatch, tmp_path):
    src = tmp_path / "src"
    write_files(src, ["a.png", "b.png", "c.png"])
    log_file = tmp_path / "run.jsonl"
    converter = WebPConverter(
        AppConfig(runtime=RuntimeConfig(log_file=log_file)), external=RecordingEncoder("cwebp")
    )
    calls: list[str] = []

    def failing_append(self, entry):
        calls.append(entry.source)
        raise OSError(28, "No space left on device")

    monkeypatch.setattr("webp_batch.core.RunLogger.append", failing_append)

    report = converter.batch_convert(ConversionOptions(src=src, threads=2))

    assert len(report.converted) == 3
    assert report.ok
    assert len(calls) == 1
    assert len(report.warnings) == 1
    assert "No space left on device" in report.warnings[0]


def test_failing_progress_callback_cancels_queued_files(tmp_path):
    src = tmp_path / "src"
    write_files(src, [f"i{i}.png" for i in range(6)])
    encoder = RecordingEncoder("cwebp", delay=0.02)
    converter = WebPConverter(external=encoder)

    def progress(outcome, done, total):
        raise RuntimeError("display closed")

    with pytest.raises(RuntimeError, match="display closed"):
        converter.batch_convert(ConversionOptions(src=src, threads=1), progress=progress)

    assert len(encoder.encoded) < 6


def test_discovered_callback_receives_image_count(tmp_path):
    src = tmp_path / "src"
    write_files(src, ["a.png", "nested/b.jpg"])
    seen: list[int] = []

    WebPConverter(external=RecordingEncoder("cwebp")).batch_convert(
        ConversionOptions(src=src), discovered=seen.append
    )

    assert seen == [2]
