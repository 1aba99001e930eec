"""
minutesgen.audio - Media probing and time-window segmentation.

Reads duration metadata with FFprobe and cuts long recordings into
standalone mono PCM WAV segments for the transcription API.
"""

from __future__ import annotations
