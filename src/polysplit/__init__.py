"""PolySplit

Split polywav recordings (X32/M32 and similar multitrack recorders) into
labeled mono WAV files, optionally stitching FAT32-capped segments first.
"""

__all__ = [
    "__version__",
]

# Keep in sync with pyproject.toml
__version__ = "0.1.0"
