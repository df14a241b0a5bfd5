from . import courses, graphics

__all__ = ["courses", "graphics"]
