"""Entry point for running Branch Outreach as a module.

Usage:
    python -m outreach validate-config
    python -m outreach --help
"""

from dotenv import load_dotenv

load_dotenv()  # Load .env before any other imports that need env vars

from outreach.cli import main  # noqa: E402

if __name__ == "__main__":
    main()
