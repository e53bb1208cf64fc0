# Sphinx configuration for the zentao-toolkit API docs

import os
import sys
sys.path.insert(0, os.path.abspath('../src'))

from zentao_toolkit import __version__  # noqa: E402

project = 'zentao-toolkit'
author = 'zentao-toolkit contributors'
release = __version__

extensions = [
    'sphinx.ext.autodoc',
    'sphinx.ext.napoleon',
    'sphinx.ext.intersphinx',
    'sphinx_autodoc_typehints',
]

html_theme = 'sphinx_rtd_theme'
exclude_patterns = ['_build']

# Docstrings use Google-style "Raises:" sections.
napoleon_google_docstring = True
napoleon_numpy_docstring = False

autodoc_default_options = {
    'members': True,
    'member-order': 'bysource',
}
always_document_param_types = True

intersphinx_mapping = {
    'python': ('https://docs.python.org/3', None),
    'httpx': ('https://www.python-httpx.org', None),
    'pydantic': ('https://docs.pydantic.dev/latest', None),
    'openpyxl': ('https://openpyxl.readthedocs.io/en/stable', None),
}
