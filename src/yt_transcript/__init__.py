"""Long-form podcast transcription: chunk, upload, transcribe, merge, persist."""

__version__ = "0.4.0"
