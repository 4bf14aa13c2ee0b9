"""Live speech transcription and translation over WebSocket."""

__version__ = "0.1.0"
