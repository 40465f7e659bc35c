import threading

import cv2
import numpy as np
import pytest

from triage.classifier import VideoVerdict
from triage.errors import LogWriteFailed, RouteFailed
from triage.motion import PeakRecord
from triage.routing import ResultsLog, format_record, route_video, snapshot_paths


def make_peak(value=80):
    frame = np.full((20, 20, 3), value, dtype=np.uint8)
    mask = np.zeros((20, 20), dtype=np.uint8)
    mask[5:10, 5:10] = 255
    return PeakRecord(frame=frame, fg_mask=mask, timestamp=1.2, mass=25 * 255.0)


def make_verdict(name="cam1.mp4", decision=True):
    return VideoVerdict(
        filename=name,
        duration=12.5,
        mean_motion=4321.0,
        max_blob_size=31.25,
        peak_timestamp=3.4,
        decision=decision,
    )


@pytest.fixture
def video(tmp_path):
    path = tmp_path / "inputs" / "cam1.mp4"
    path.parent.mkdir()
    path.write_bytes(b"not really a video")
    return path


def test_keep_moves_video_and_writes_snapshots(video, config, tmp_path):
    dest = route_video(str(video), True, make_peak(), config)

    assert dest == config.keep_dir
    assert not video.exists()
    assert (tmp_path / "keep" / "cam1.mp4").exists()
    assert (tmp_path / "keep" / "frame_cam1.mp4.png").exists()
    assert (tmp_path / "keep" / "mask_cam1.mp4.png").exists()


def test_discard_without_peak_skips_snapshots(video, config, tmp_path):
    dest = route_video(str(video), False, None, config)

    assert dest == config.discard_dir
    assert (tmp_path / "discard" / "cam1.mp4").exists()
    assert not (tmp_path / "discard" / "frame_cam1.mp4.png").exists()


def test_route_failure_leaves_source_in_place(video, config, tmp_path):
    # A file where the keep directory should be
    (tmp_path / "keep").write_text("")

    with pytest.raises(RouteFailed):
        route_video(str(video), True, make_peak(), config)

    assert video.exists()


def test_existing_destination_is_not_overwritten(video, config, tmp_path):
    (tmp_path / "discard").mkdir()
    (tmp_path / "discard" / "cam1.mp4").write_bytes(b"older")

    with pytest.raises(RouteFailed):
        route_video(str(video), False, None, config)

    assert video.exists()
    assert (tmp_path / "discard" / "cam1.mp4").read_bytes() == b"older"


def test_snapshot_paths_use_file_name(tmp_path):
    frame_path, mask_path = snapshot_paths("/videos/in/front door.mov", str(tmp_path))
    assert frame_path == str(tmp_path / "frame_front door.mov.png")
    assert mask_path == str(tmp_path / "mask_front door.mov.png")


def test_same_stem_different_extension_keeps_both_snapshots(config, tmp_path):
    inputs = tmp_path / "inputs"
    inputs.mkdir()
    for name in ("cam1.mp4", "cam1.avi"):
        (inputs / name).write_bytes(b"not really a video")

    route_video(str(inputs / "cam1.mp4"), True, make_peak(80), config)
    route_video(str(inputs / "cam1.avi"), True, make_peak(200), config)

    keep = tmp_path / "keep"
    assert cv2.imread(str(keep / "frame_cam1.mp4.png"))[0, 0, 0] == 80
    assert cv2.imread(str(keep / "frame_cam1.avi.png"))[0, 0, 0] == 200


def test_failed_route_keeps_earlier_snapshots(config, tmp_path):
    first = tmp_path / "a" / "cam1.mp4"
    second = tmp_path / "b" / "cam1.mp4"
    for path in (first, second):
        path.parent.mkdir()
        path.write_bytes(b"not really a video")

    route_video(str(first), True, make_peak(80), config)
    snapshot = tmp_path / "keep" / "frame_cam1.mp4.png"
    before = snapshot.read_bytes()

    with pytest.raises(RouteFailed, match="already exists"):
        route_video(str(second), True, make_peak(200), config)

    assert second.exists()
    assert snapshot.read_bytes() == before


def test_failed_move_removes_new_snapshots(video, config, tmp_path, monkeypatch):
    def refuse(src, dst):
        raise PermissionError(f"cannot move {src}")

    monkeypatch.setattr("triage.routing.shutil.move", refuse)

    with pytest.raises(RouteFailed):
        route_video(str(video), True, make_peak(), config)

    assert video.exists()
    assert list((tmp_path / "keep").iterdir()) == []


def test_format_record():
    assert format_record(make_verdict()) == ["cam1.mp4", "12.500", "4321.000", "31.250", "3.400", "1"]
    assert format_record(make_verdict(decision=False))[-1] == "0"


def test_header_written_once_and_fields_quoted(tmp_path):
    path = tmp_path / "logs" / "results.csv"

    ResultsLog(str(path)).append(make_verdict("a.mp4"))
    ResultsLog(str(path)).append(make_verdict("b.mp4", decision=False))

    lines = path.read_text().splitlines()
    assert lines[0] == '"Filename","Duration","Metric1","Metric2","TimeOfMaxMotion","Saved"'
    assert lines[1] == '"a.mp4","12.500","4321.000","31.250","3.400","1"'
    assert lines[2].startswith('"b.mp4"')
    assert len(lines) == 3


def test_concurrent_appends_do_not_interleave(tmp_path):
    log = ResultsLog(str(tmp_path / "results.csv"))

    def write(i):
        for j in range(20):
            log.append(make_verdict(f"video_{i}_{j}.mp4"))

    threads = [threading.Thread(target=write, args=(i,)) for i in range(5)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    rows = log.read()
    assert rows[0][0] == "Filename"
    assert len(rows) == 101
    assert all(len(row) == 6 for row in rows)


def test_unwritable_log_raises(tmp_path):
    log = ResultsLog(str(tmp_path))

    with pytest.raises(LogWriteFailed):
        log.append(make_verdict())


def test_read_missing_log_is_empty(tmp_path):
    assert ResultsLog(str(tmp_path / "missing.csv")).read() == []
