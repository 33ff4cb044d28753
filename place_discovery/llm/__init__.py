"""
LLM integration layer.

Responsibilities:
- Manage Groq API configuration and credentials.
- Describe a place to the model and ask for a 0-100 mood score.
- Fall back to "no score" when the LLM is unavailable or returns junk.
"""
