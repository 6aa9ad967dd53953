"""East & West Kitchen - Recipe Generation Service.

Single entry point for the service:
- Loads and validates configuration once at startup
- Builds the Gemini generation client (and blob uploader for the reference transport)
- Serves /api/generate-recipe, /api/analyze-image and /api/health via FastAPI

Run with: python app.py
"""

import uvicorn

from src.api.server import create_app
from src.utils.config import load_config
from src.utils.logger import logger

config = load_config()
app = create_app(config)


if __name__ == "__main__":
    logger.info(f"Starting recipe service on port {config.PORT}")
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
