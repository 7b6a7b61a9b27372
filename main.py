"""
PickOnTheGo Instant Rides -- dispatch core
==========================================
Entry point. Run with: uvicorn main:app --reload
"""

import uvicorn

from src.api.app import create_app
from src.config import settings
from src.logging_setup import setup_logging

setup_logging(settings.log_level)

app = create_app()

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
