"""
avconvert - audio/video batch conversion.

Drives batches of media files through one of three interchangeable
conversion engines (native presets, an external ffmpeg process, or a
cloud conversion API) and reports per-file terminal status.
"""

__version__ = "0.1.0"
