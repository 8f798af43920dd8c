from __future__ import annotations

from sensor_monitor.models import RecordingConfig, SensorKind
from sensor_monitor.sources import (
    ManualSensorSource,
    PollingSensorSource,
    alsa_capture_probe,
)

RUNNING_STATUS = """state: RUNNING
owner_pid   : 4242
trigger_time: 1234.5
tstamp      : 1234.6
"""


def _write_status(root, card: int, pcm: int, text: str):
    sub = root / f"card{card}" / f"pcm{pcm}c" / "sub0"
    sub.mkdir(parents=True)
    (sub / "status").write_text(text, encoding="utf-8")
    return sub


def test_alsa_probe_reports_running_capture_streams(tmp_path):
    running = _write_status(tmp_path, 0, 0, RUNNING_STATUS)
    _write_status(tmp_path, 1, 0, "closed\n")
    _write_status(tmp_path, 1, 1, "state: SETUP\nowner_pid   : 7\n")

    configs = alsa_capture_probe(str(tmp_path / "card*" / "pcm*c" / "sub*" / "status"))

    assert configs == [RecordingConfig(device=str(running), owner_pid=4242)]


def test_polling_source_dispatches_only_on_change():
    results = [[], [RecordingConfig("mic0")], [RecordingConfig("mic0")], []]
    source = PollingSensorSource(SensorKind.MICROPHONE, lambda: results.pop(0))
    received = []
    source.register(received.append)

    changes = [source.poll_once() for _ in range(4)]

    assert changes == [False, True, False, True]
    assert received == [[RecordingConfig("mic0")], []]


def test_probe_errors_keep_previous_state():
    def broken():
        raise OSError("no such file")

    source = PollingSensorSource(SensorKind.CAMERA, broken)
    received = []
    source.register(received.append)

    assert source.poll_once() is False
    assert received == []


def test_unregistered_callback_is_not_invoked():
    source = ManualSensorSource(SensorKind.CAMERA)
    received = []
    source.register(received.append)
    source.register(received.append)
    assert source.callback_count == 1

    source.publish([RecordingConfig("/dev/video0", 1)])
    source.unregister(received.append)
    source.publish([])

    assert received == [[RecordingConfig("/dev/video0", 1)]]


def test_failing_callback_does_not_block_others():
    source = ManualSensorSource(SensorKind.MICROPHONE)
    received = []

    def broken(configs):
        raise RuntimeError("boom")

    source.register(broken)
    source.register(received.append)
    source.publish([])

    assert received == [[]]


def test_video_probe_finds_processes_holding_video_devices(tmp_path, monkeypatch):
    from sensor_monitor import sources

    class FakeProc:
        def __init__(self, pid):
            self.info = {"pid": pid}

    for pid, target in [(100, "/dev/video0"), (200, "/dev/null")]:
        fd_dir = tmp_path / str(pid) / "fd"
        fd_dir.mkdir(parents=True)
        (fd_dir / "3").symlink_to(target)

    monkeypatch.setattr(
        sources.psutil, "process_iter", lambda attrs=None: [FakeProc(100), FakeProc(200), FakeProc(300)]
    )

    configs = sources.video_device_probe(proc_root=str(tmp_path))

    assert configs == [RecordingConfig(device="/dev/video0", owner_pid=100)]


def test_restarted_source_reports_active_sensor_again():
    source = PollingSensorSource(SensorKind.MICROPHONE, lambda: [RecordingConfig("mic0")])
    received = []
    source.register(received.append)

    assert source.poll_once() is True
    source.stop()
    assert source.poll_once() is True
    assert received == [[RecordingConfig("mic0")], [RecordingConfig("mic0")]]
