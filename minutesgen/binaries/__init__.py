"""
minutesgen.binaries - FFmpeg/FFprobe deployment and execution.

Provisions the decoder and prober at a fixed per-user location and runs
them through a ladder of increasingly defensive invocation strategies.
"""

from __future__ import annotations
