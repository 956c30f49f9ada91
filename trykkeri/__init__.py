"""HTTP service that renders HTML and web pages to PDF with wkhtmltopdf."""

__version__ = "1.0.0"