"""
Callback interfaces the core uses to report to the presentation layer.

The core only calls these; it never depends on what sits behind them (a Tk
widget update, a queue, a test recorder).
"""

from typing import Callable

# on_progress(bytes_received, total_bytes); total is -1 when the size is unknown.
ProgressSink = Callable[[int, int], None]

# on_line(text) for one line of output, without its line terminator.
LineSink = Callable[[str], None]


def discard_progress(received: int, total: int) -> None:
    pass
