import os
import sys
sys.path.insert(0, os.path.abspath('../..'))  # points to repo root

# Sphinx configuration for the studio booking service API docs.
#
# https://www.sphinx-doc.org/en/master/usage/configuration.html

# -- Project information -----------------------------------------------------

project = 'Studio Booking Service'
copyright = '2025, Studio Booking maintainers'
author = 'Studio Booking maintainers'
release = '1.0.0'

# -- General configuration ---------------------------------------------------

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.napoleon",   # numpy-style docstrings
    "sphinx.ext.viewcode",
    "sphinx.ext.autosummary",
]
autosummary_generate = True

# the service modules read these at import time
os.environ.setdefault("DATABASE_URL", "sqlite:///:memory:")

templates_path = ['_templates']
exclude_patterns = []

# -- Options for HTML output -------------------------------------------------

html_theme = 'alabaster'
html_static_path = ['_static']
