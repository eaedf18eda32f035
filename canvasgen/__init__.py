"""canvasgen: provider abstraction and task orchestration for AI image/video nodes."""

__version__ = "0.1.0"
