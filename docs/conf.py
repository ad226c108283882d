# Configuration file for the Sphinx documentation builder.
#
# Only the options which differ from the sphinx-quickstart defaults are set
# here. For the full list see
# https://www.sphinx-doc.org/en/master/usage/configuration.html

import os
import sys

sys.path.insert(0, os.path.abspath(".."))

from cbit.version import version as _version  # noqa: E402

# -- General configuration ------------------------------------------------

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.intersphinx",
]

templates_path = ["_templates"]
master_doc = "index"

project = "cbit"
copyright = "2024 cbit Team"
author = "cbit Team"

version = _version
release = _version

language = os.environ.get("DOCS_LANGUAGE", "en")

exclude_patterns = ["_build"]

# -- Options for HTML output ----------------------------------------------

html_theme = "sphinx_rtd_theme"

html_last_updated_fmt = "%Y-%m-%d %H:%M %Z"

htmlhelp_basename = "cbitdoc"

# -- Options for manual page output ---------------------------------------

man_pages = [(master_doc, "cbit", "cbit Documentation", [author], 1)]

intersphinx_mapping = {
    "pytest": ("https://docs.pytest.org/en/latest/", None),
    "python": ("https://docs.python.org/3.10/", None),
}

autodoc_member_order = "bysource"
