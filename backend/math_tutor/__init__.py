"""Math tutoring backend: Gemini-powered problem solving and follow-up chat."""

__version__ = "0.1.0"
