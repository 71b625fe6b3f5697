"""
Export modules for block model formats.

Supported formats:
- Java block model (.json + texture.png) - Loads directly in Minecraft resource packs
- Blockbench project (.bbmodel) - Self-contained, editable in Blockbench
"""

from .texture_atlas import ColorAtlas, TexturePacker
from .cuboids import DISPLAY_PRESETS, FACE_DIRECTIONS, Cuboid, build_cuboids
from .java_model import JavaModelExporter
from .bbmodel import BBModelExporter, UuidGenerator

__all__ = [
    "ColorAtlas",
    "TexturePacker",
    "DISPLAY_PRESETS",
    "FACE_DIRECTIONS",
    "Cuboid",
    "build_cuboids",
    "JavaModelExporter",
    "BBModelExporter",
    "UuidGenerator",
]
