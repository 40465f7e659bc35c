import json

from main import build_parser, main, resolve_config
from triage import constants


def test_flags_override_config_file(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps({"history": 250, "blob_threshold": 12.0, "keep_dir": "/from/file"}))

    args = build_parser().parse_args(
        ["--config", str(path), "--history", "100", "--radius", "400", "--no-progress"]
    )
    config = resolve_config(args)

    assert config.history == 100
    assert config.blob_threshold == 12.0
    assert config.keep_dir == "/from/file"
    assert config.roi.radius == 400
    assert config.roi.crop == constants.ROI_CROP
    assert config.show_progress is False


def test_defaults_without_flags():
    config = resolve_config(build_parser().parse_args([]))
    assert config.motion_threshold == constants.MOTION_THRESHOLD
    assert config.show_progress is True


def test_invalid_config_exits_with_2(tmp_path):
    assert main(["--input-dir", str(tmp_path), "--radius", "5000"]) == 2


def test_empty_input_dir(tmp_path):
    assert main(["--input-dir", str(tmp_path)]) == 0
