"""Letter rendering collaborators.

- Jinja2 template renderer and template catalog
- PyMuPDF renderer for A4 letter PDFs
"""

from outreach.letters.pdf import PyMuPdfRenderer
from outreach.letters.templates import (
    TEMPLATE_CATALOG,
    JinjaTemplateRenderer,
    TemplateInfo,
    get_template_catalog,
    get_template_info,
)

__all__ = [
    "JinjaTemplateRenderer",
    "PyMuPdfRenderer",
    "TEMPLATE_CATALOG",
    "TemplateInfo",
    "get_template_catalog",
    "get_template_info",
]
