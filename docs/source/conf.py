import os
import sys

sys.path.insert(0, os.path.abspath("../.."))

project = "Hotel Booking Payments"
copyright = "2026, Hotel Platform Team"
author = "Hotel Platform Team"
release = "0.3.0"

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",
    "sphinx.ext.viewcode",
]

autodoc_mock_imports = ["stripe"]

templates_path = ["_templates"]
exclude_patterns: list[str] = []

html_theme = "sphinx_rtd_theme"
html_static_path = ["_static"]
