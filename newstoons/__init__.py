"""Editorial cartoons from the day's news, drawn by Gemini."""

__version__ = "0.1.0"
