"""Main entry point for the storefront service."""

import os

import uvicorn

from storefront.server import app


def run() -> None:
    uvicorn.run(app, host=os.getenv("HOST", "0.0.0.0"), port=int(os.getenv("PORT", "8000")))


if __name__ == "__main__":
    run()
