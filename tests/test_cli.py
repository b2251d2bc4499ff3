import os

import numpy as np
from PIL import Image

from particlemorph import cli
from particlemorph.motion.state import MotionStyle, PlaybackSpeed
from particlemorph.visualization.preview import PreviewCollector


def _write_images(tmp_path):
    rng = np.random.default_rng(0)
    src = tmp_path / "src.png"
    tgt = tmp_path / "tgt.png"
    Image.fromarray(rng.integers(0, 256, size=(80, 80, 3), dtype=np.uint8)).save(src)
    Image.fromarray(rng.integers(0, 256, size=(70, 90, 3), dtype=np.uint8)).save(tgt)
    return str(src), str(tgt)


def test_cli_heuristic_with_motion(tmp_path, capsys):
    src, tgt = _write_images(tmp_path)
    out = tmp_path / "out"
    code = cli.main([
        "--source", src, "--target", tgt, "--sidelen", "64",
        "--algorithm", "heuristic", "--generations", "2", "--swaps-per-pixel", "0.1", "--seed", "1",
        "--out", str(out), "--frames", "--style", "swirl", "--speed", "double", "--ticks", "5",
    ])
    assert code == 0
    assert (out / "result.png").exists()
    assert (out / "motion_frame.png").exists()
    assert any(name.endswith(".png") for name in os.listdir(out / "previews"))
    with Image.open(out / "result.png") as img:
        assert img.size == (64, 64)

    printed = capsys.readouterr().out
    assert f"{MotionStyle.SWIRL.label} motion at {PlaybackSpeed.DOUBLE.label}" in printed
    assert "Swirl motion at 2x" in printed


def test_labels():
    assert MotionStyle.MAGNET_SNAP.label == "Magnet Snap"
    assert PlaybackSpeed.QUARTER.label == "0.25x"


def test_preview_collector_keeps_and_writes(tmp_path):
    collector = PreviewCollector(out_dir=str(tmp_path), png_prefix="p")
    collector.add(np.zeros((4, 4, 3), dtype=np.uint8))
    collector.add(np.full((4, 4, 3), 9, dtype=np.uint8))
    assert len(collector) == 2
    assert collector.frames[-1][0, 0, 0] == 9
    assert sorted(os.listdir(tmp_path)) == ["p_0000.png", "p_0001.png"]
