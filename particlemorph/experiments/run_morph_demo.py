import os
import time

from particlemorph.cli import render_frame
from particlemorph.core import utils
from particlemorph.core.grid import ParticleGrid
from particlemorph.core.settings import Algorithm, GenerationSettings
from particlemorph.motion.state import MotionParams, MotionStyle
from particlemorph.session import MorphSession
from particlemorph.visualization.preview import PreviewCollector

SIDELEN = 64
OUT = "out_run"

src = ParticleGrid.from_path("source.jpg", SIDELEN)
tgt = ParticleGrid.from_path("target.jpg", SIDELEN)

session = MorphSession(params=MotionParams(style=MotionStyle.SWIRL, swirl_amount=0.5, loop_playback=False), seed=123)
session.request(src, tgt, GenerationSettings(sidelen=SIDELEN, algorithm=Algorithm.HEURISTIC, seed=123, preview_every=5))

collector = PreviewCollector(out_dir=os.path.join(OUT, "previews"), keep_frames=False)
while session.busy:
    session.poll()
    if session.preview is not None:
        collector.add(session.preview)
        session.preview = None
    time.sleep(1 / 60)

if session.error:
    raise SystemExit(session.error)

frames = []
while session.state.playing:
    frames.append(session.tick())

utils.save_image(render_frame(frames[-1], SIDELEN), SIDELEN, os.path.join(OUT, "final.png"))
print(f"Done! {len(collector)} previews, {len(frames)} motion ticks, cost {session.last_stats['final_cost']:.4f}")
