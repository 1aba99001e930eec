"""
minutesgen - Audio preparation core for cloud transcription.

Takes an arbitrarily large local audio/video file and turns it into
transcription-ready pieces: provisions the FFmpeg/FFprobe binaries,
probes duration, splits into bounded WAV segments, and moves oversized
files across a size-limited channel in ordered chunks.
"""

__version__ = "0.1.0"
