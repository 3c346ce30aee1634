"""
Display collaborators for the temperature indicator.
"""

from .indicator import Display, ConsoleIndicator, Rendering, render_label, render_icon_text

__all__ = ["Display", "ConsoleIndicator", "Rendering", "render_label", "render_icon_text"]
