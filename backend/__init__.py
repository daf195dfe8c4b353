"""backend/ - FastAPI serving layer for the chat assistant."""
