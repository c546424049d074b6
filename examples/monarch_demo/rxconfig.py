"""Reflex configuration for the dynamic grid demo app."""

import os

import reflex as rx

# The demo serves its own mock ERP endpoints from the Reflex backend.
os.environ.setdefault("MONARCH_API_BASE_URL", "http://localhost:8000")

config = rx.Config(
    app_name="monarch_demo",
    plugins=[rx.plugins.SitemapPlugin()],
)
