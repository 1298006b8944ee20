"""FastAPI surface of the GymBook API."""
