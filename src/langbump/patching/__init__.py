"""Format-preserving version marker patching."""

from .engine import PatchResult, apatch_file, patch_file, read_marker

__all__ = ["PatchResult", "apatch_file", "patch_file", "read_marker"]
