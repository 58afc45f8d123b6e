#!/usr/bin/env python
"""
Entry point for running GitSee.

This script sets up the Python path, loads .env and runs the GitSee server.
"""

import sys
import os
from pathlib import Path

# Add src directory to Python path
project_root = Path(__file__).parent
src_path = project_root / "src"
sys.path.insert(0, str(src_path))

from dotenv import load_dotenv
import uvicorn

# Load environment variables
load_dotenv()

# Configure logging before importing application modules
from gitsee.logging_config import configure_logging
configure_logging()

from gitsee.config import GitSeeSettings
from gitsee.main import create_app


def main():
    """Run the GitSee server."""
    settings = GitSeeSettings.from_env()

    print("""
╔══════════════════════════════════════════════════════════════╗
║                         GitSee v0.1                          ║
║           GitHub Repository Exploration Service              ║
╚══════════════════════════════════════════════════════════════╝

📋 Configuration:
   - LLM Provider: {}
   - Model: {}
   - Checkouts: {}
   - Results: {}
   - GitHub token: {}
    """.format(
        settings.llm_provider,
        settings.llm_model_id or "default",
        settings.base_path,
        settings.data_dir,
        "set" if settings.github_token else "not set (anonymous rate limits apply)"
    ))

    app = create_app(settings)

    print(f"🚀 Server starting on http://{settings.host}:{settings.port}")
    print(f"📡 Event stream: http://{settings.host}:{settings.port}/api/gitsee/events/<owner>/<repo>")
    print(f"💚 Health check: http://{settings.host}:{settings.port}/health\n")

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=os.getenv("LOG_LEVEL", "info").lower()
    )


if __name__ == "__main__":
    main()
