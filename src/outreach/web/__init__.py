"""JSON API for Branch Outreach.

Provides a FastAPI-based interface for:
- Spreadsheet upload and customer analysis
- Letter templates, previews and batch generation
- Batch email dispatch and SMTP status
"""

from outreach.web.app import create_app

__all__ = ["create_app"]
