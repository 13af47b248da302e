from __future__ import annotations

import asyncio

from deskmate.bridge import contracts
from deskmate.controllers.model_download import (
    DownloadProgressTracker,
    ModelState,
    format_bytes,
    to_percent,
)


def _status(installed: bool) -> dict:
    return {
        "name": "faster-whisper small",
        "description": "Whisper",
        "size_mb": 484,
        "is_installed": installed,
        "model_dir": "/models/small",
    }


def _progress(file_name: str, progress: float, status: str = "downloading", **extra) -> dict:
    return {"file_name": file_name, "progress": progress, "status": status, **extra}


class FakeModelBackend:
    """Serves check/download; ``script`` is the list of events a download emits."""

    def __init__(self, bridge, script: list[dict], *, error: str | None = None) -> None:
        self.bridge = bridge
        self.script = script
        self.error = error
        self.installed = False

        async def check_asr_model() -> dict:
            return _status(self.installed)

        async def download_asr_model() -> None:
            for event in self.script:
                if event["status"] == "completed" and event["file_name"] == "vocabulary.txt":
                    self.installed = True
                bridge.emit(contracts.MODEL_DOWNLOAD_PROGRESS, event)
            if self.error:
                raise RuntimeError(self.error)

        bridge.register(contracts.CHECK_ASR_MODEL, check_asr_model)
        bridge.register(contracts.DOWNLOAD_ASR_MODEL, download_asr_model)


def test_format_bytes() -> None:
    assert format_bytes(512) == "512 B"
    assert format_bytes(2048) == "2.0 KB"
    assert format_bytes(5_242_880) == "5.0 MB"
    assert format_bytes(1023) == "1023 B"
    assert format_bytes(1024 * 1024 - 1) == "1024.0 KB"


def test_percent_rounds_half_up() -> None:
    assert to_percent(0.125) == 13
    assert to_percent(0.5) == 50
    assert to_percent(1.0) == 100


def test_check_model_reports_not_installed(bridge) -> None:
    FakeModelBackend(bridge, [])
    tracker = DownloadProgressTracker(bridge)
    assert tracker.state is ModelState.UNKNOWN

    asyncio.run(tracker.check_model())

    assert tracker.state is ModelState.NOT_INSTALLED
    assert tracker.status.name == "faster-whisper small"


def test_probe_failure_returns_to_unknown(bridge) -> None:
    async def check_asr_model() -> dict:
        raise OSError("probe failed")

    bridge.register(contracts.CHECK_ASR_MODEL, check_asr_model)
    tracker = DownloadProgressTracker(bridge)

    asyncio.run(tracker.check_model())

    assert tracker.state is ModelState.UNKNOWN
    assert "probe failed" in tracker.error


def test_out_of_order_progress_keeps_last_applied_value(bridge) -> None:
    FakeModelBackend(
        bridge,
        [
            _progress("model.bin", 0.3, downloaded_bytes=300, total_bytes=1000),
            _progress("model.bin", 0.7, downloaded_bytes=700, total_bytes=1000),
            _progress("model.bin", 0.5, downloaded_bytes=500, total_bytes=1000),
        ],
    )

    async def scenario() -> DownloadProgressTracker:
        with DownloadProgressTracker(bridge) as tracker:
            await tracker.check_model()
            await tracker.download_model()
            return tracker

    tracker = asyncio.run(scenario())
    assert tracker.current_file == "model.bin"
    assert tracker.percent == 50
    assert tracker.byte_label == "500 B / 1000 B"
    # No terminal completion arrived, so the download is still considered running.
    assert tracker.state is ModelState.DOWNLOADING
    assert tracker.pending_probe is None


def test_byte_label_hidden_until_total_known(bridge) -> None:
    FakeModelBackend(bridge, [_progress("model.bin", 0.0, downloaded_bytes=4096, total_bytes=0)])

    async def scenario() -> DownloadProgressTracker:
        with DownloadProgressTracker(bridge) as tracker:
            await tracker.check_model()
            await tracker.download_model()
            return tracker

    tracker = asyncio.run(scenario())
    assert tracker.byte_label is None
    assert tracker.percent == 0


def test_terminal_completion_reprobes_and_installs(bridge) -> None:
    backend = FakeModelBackend(
        bridge,
        [
            _progress("model.bin", 1.0, "completed"),
            _progress("tokenizer.json", 1.0, "completed"),
            _progress("config.json", 1.0, "completed"),
            _progress("vocabulary.txt", 1.0, "completed", downloaded_bytes=2048, total_bytes=2048),
        ],
    )

    async def scenario() -> DownloadProgressTracker:
        with DownloadProgressTracker(bridge) as tracker:
            await tracker.check_model()
            await tracker.download_model()
            assert tracker.pending_probe is not None
            await tracker.pending_probe
            return tracker

    tracker = asyncio.run(scenario())
    assert backend.installed
    assert tracker.state is ModelState.INSTALLED
    assert tracker.is_installed
    assert len(bridge.called(contracts.CHECK_ASR_MODEL)) == 2
    assert tracker.byte_label == "2.0 KB / 2.0 KB"


def test_completion_of_non_terminal_file_does_not_install(bridge) -> None:
    FakeModelBackend(bridge, [_progress("model.bin", 1.0, "completed")])

    async def scenario() -> DownloadProgressTracker:
        with DownloadProgressTracker(bridge) as tracker:
            await tracker.check_model()
            await tracker.download_model()
            return tracker

    tracker = asyncio.run(scenario())
    assert tracker.state is ModelState.DOWNLOADING
    assert len(bridge.called(contracts.CHECK_ASR_MODEL)) == 1


def test_failure_event_names_file_and_requires_restart(bridge) -> None:
    FakeModelBackend(
        bridge,
        [
            _progress("model.bin", 0.4),
            _progress("model.bin", 0.4, "failed", error="connection reset"),
        ],
        error="connection reset",
    )

    async def scenario() -> DownloadProgressTracker:
        with DownloadProgressTracker(bridge) as tracker:
            await tracker.check_model()
            await tracker.download_model()
            return tracker

    tracker = asyncio.run(scenario())
    assert tracker.state is ModelState.NOT_INSTALLED
    assert tracker.error == "Download failed for model.bin: connection reset"
    assert len(bridge.called(contracts.DOWNLOAD_ASR_MODEL)) == 1


def test_command_failure_without_event_returns_to_not_installed(bridge) -> None:
    FakeModelBackend(bridge, [], error="disk full")

    async def scenario() -> DownloadProgressTracker:
        tracker = DownloadProgressTracker(bridge)
        await tracker.check_model()
        await tracker.download_model()
        return tracker

    tracker = asyncio.run(scenario())
    assert tracker.state is ModelState.NOT_INSTALLED
    assert tracker.error == "Download failed: disk full"


def test_download_only_starts_from_not_installed(bridge) -> None:
    FakeModelBackend(bridge, [])
    tracker = DownloadProgressTracker(bridge)

    asyncio.run(tracker.download_model())

    assert tracker.state is ModelState.UNKNOWN
    assert bridge.called(contracts.DOWNLOAD_ASR_MODEL) == []


def test_stray_events_only_overwrite_progress_fields(bridge) -> None:
    FakeModelBackend(bridge, [])

    async def scenario() -> DownloadProgressTracker:
        with DownloadProgressTracker(bridge) as tracker:
            await tracker.check_model()
            bridge.emit(contracts.MODEL_DOWNLOAD_PROGRESS, _progress("vocabulary.txt", 1.0, "completed"))
            bridge.emit(contracts.MODEL_DOWNLOAD_PROGRESS, {"file_name": "x", "status": "bogus"})
            return tracker

    tracker = asyncio.run(scenario())
    assert tracker.state is ModelState.NOT_INSTALLED
    assert tracker.current_file == "vocabulary.txt"
    assert tracker.percent == 100
    assert tracker.pending_probe is None


def test_subscription_opened_once_and_released(bridge) -> None:
    tracker = DownloadProgressTracker(bridge)

    first = tracker.open()
    second = tracker.open()
    assert first is second
    assert bridge.listener_count(contracts.MODEL_DOWNLOAD_PROGRESS) == 1

    tracker.close()
    assert bridge.listener_count(contracts.MODEL_DOWNLOAD_PROGRESS) == 0
    assert not first.active


def test_check_and_second_download_ignored_while_download_outstanding(bridge) -> None:
    async def check_asr_model() -> dict:
        return _status(False)

    release = asyncio.Event()

    async def download_asr_model() -> None:
        await release.wait()

    bridge.register(contracts.CHECK_ASR_MODEL, check_asr_model)
    bridge.register(contracts.DOWNLOAD_ASR_MODEL, download_asr_model)

    async def scenario() -> DownloadProgressTracker:
        with DownloadProgressTracker(bridge) as tracker:
            await tracker.check_model()
            first = asyncio.create_task(tracker.download_model())
            await asyncio.sleep(0)
            assert tracker.state is ModelState.DOWNLOADING

            await tracker.check_model()
            assert tracker.state is ModelState.DOWNLOADING
            await tracker.download_model()

            release.set()
            await first
            return tracker

    tracker = asyncio.run(scenario())
    assert len(bridge.called(contracts.DOWNLOAD_ASR_MODEL)) == 1
    assert len(bridge.called(contracts.CHECK_ASR_MODEL)) == 1


def test_check_allowed_again_after_download_command_returns(bridge) -> None:
    FakeModelBackend(bridge, [_progress("model.bin", 0.5)])

    async def scenario() -> DownloadProgressTracker:
        with DownloadProgressTracker(bridge) as tracker:
            await tracker.check_model()
            await tracker.download_model()
            await tracker.check_model()
            return tracker

    tracker = asyncio.run(scenario())
    assert tracker.state is ModelState.NOT_INSTALLED
    assert len(bridge.called(contracts.CHECK_ASR_MODEL)) == 2
