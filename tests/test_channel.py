import threading

import numpy as np
import pytest

from particlemorph.jobs.channel import (
    AssignmentUpdate,
    CancellationToken,
    Cancelled,
    Done,
    Error,
    PreviewUpdate,
    Progress,
    ProgressChannel,
    is_terminal,
)
from particlemorph.errors import SolveCancelled


def test_state_messages_coalesce():
    ch = ProgressChannel()
    ch.report_progress(0.1)
    ch.report_preview(np.zeros((2, 2, 3)))
    ch.report_progress(0.4)
    ch.report_preview(np.ones((2, 2, 3)))
    msgs = ch.drain()
    assert [type(m) for m in msgs] == [Progress, PreviewUpdate]
    assert msgs[0].fraction == 0.4
    assert msgs[1].image.max() == 1
    assert ch.drain() == []


def test_progress_is_clamped_and_monotone():
    ch = ProgressChannel()
    seen = []
    for f in (0.3, 0.2, 1.5, -1.0):
        ch.report_progress(f)
        seen.extend(m.fraction for m in ch.drain())
    assert seen == [0.3, 0.3, 1.0, 1.0]


def test_helpers_copy_payloads():
    ch = ProgressChannel()
    a = np.arange(4)
    ch.report_assignment(a)
    a[0] = 99
    (msg,) = ch.drain()
    assert isinstance(msg, AssignmentUpdate)
    assert msg.assignment[0] == 0


@pytest.mark.parametrize("terminal", [Done(np.arange(3)), Cancelled(), Error("boom")])
def test_nothing_follows_terminal(terminal):
    ch = ProgressChannel()
    ch.report_progress(0.5)
    assert ch.send(terminal)
    assert ch.closed and not ch.finished
    assert not ch.send(Progress(0.9))
    assert not ch.send(Cancelled())
    msgs = ch.drain()
    assert len(msgs) == 2
    assert msgs[0] == Progress(0.5)
    assert msgs[1] is terminal
    assert ch.finished
    assert ch.drain() == []


def test_terminal_is_never_coalesced():
    ch = ProgressChannel()
    ch.report_progress(0.2)
    ch.send(Error("bad input"))
    msgs = ch.drain()
    assert msgs[-1] == Error("bad input")


def test_concurrent_producer_keeps_order():
    ch = ProgressChannel()

    def produce():
        for k in range(1, 501):
            ch.report_progress(k / 500)
        ch.send(Done(np.arange(2)))

    t = threading.Thread(target=produce)
    t.start()
    seen = []
    while True:
        msgs = ch.drain()
        seen.extend(msgs)
        if msgs and is_terminal(msgs[-1]):
            break
    t.join()
    fractions = [m.fraction for m in seen if isinstance(m, Progress)]
    assert fractions == sorted(fractions)
    assert fractions[-1] == 1.0
    assert isinstance(seen[-1], Done)
    assert sum(is_terminal(m) for m in seen) == 1


def test_cancellation_token():
    token = CancellationToken()
    token.raise_if_cancelled()
    assert not token.cancelled
    token.cancel()
    assert token.cancelled
    with pytest.raises(SolveCancelled):
        token.raise_if_cancelled()


def test_done_after_cancel_is_delivered_as_cancelled():
    token = CancellationToken()
    ch = ProgressChannel(token)
    ch.report_progress(1.0)
    ch.cancel()
    assert token.cancelled
    assert ch.send(Done(np.arange(3)))
    msgs = ch.drain()
    assert msgs == [Progress(1.0), Cancelled()]


def test_done_before_cancel_is_kept():
    token = CancellationToken()
    ch = ProgressChannel(token)
    done = Done(np.arange(3))
    ch.send(done)
    ch.cancel()
    assert ch.drain()[-1] is done


def test_cancel_needs_a_token():
    with pytest.raises(RuntimeError):
        ProgressChannel().cancel()
