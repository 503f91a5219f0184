"""Application entry point for the Fayda ID extraction API server."""

import uvicorn

from fayda_ocr.api.app import app
from fayda_ocr.utils.config import load_config
from fayda_ocr.utils.logger import setup_logging


def main() -> None:
    """Start the FastAPI application server."""
    config = load_config()
    setup_logging(config.log_level)
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    main()
