"""langbump: keep pinned toolchain versions in build files current."""

__version__ = "1.0.0"
