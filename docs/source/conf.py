import os
import sys

sys.path.insert(0, os.path.abspath("../.."))
os.environ.setdefault("DATABASE_URL", "sqlite:///./docs.db")

project = "Resource Management System"
copyright = "2025, RMS contributors"
author = "RMS contributors"
release = "1.0.0"

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",
    "sphinx.ext.viewcode",
]

autodoc_member_order = "bysource"
templates_path = ["_templates"]
exclude_patterns: list[str] = []

html_theme = "sphinx_rtd_theme"
html_static_path = []
