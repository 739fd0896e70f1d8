"""
Entrypoint script for the AutoML studio backend.

Creates tables, then serves the FastAPI app with uvicorn.
"""

import argparse

import uvicorn

from automl_studio.main import create_app, init_db


def build_app():
    init_db()
    return create_app()


def main():
    parser = argparse.ArgumentParser(description="Run the AutoML studio API")
    parser.add_argument("--host", default="0.0.0.0")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true")
    args = parser.parse_args()

    uvicorn.run(
        "automl_studio.entrypoint:build_app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        factory=True,
    )


if __name__ == "__main__":
    main()
