# Configuration file for the Sphinx documentation builder.

# -- Project information

project = "swnepy"
copyright = "2026, swnepy developers"
authors = "swnepy developers"

release = "0.1.0"
version = "0.1.0"

# -- General configuration ------------------------------------------------

needs_sphinx = "2.0"

extensions = [
    "sphinx.ext.autodoc",
    "sphinx.ext.doctest",
    "sphinx.ext.coverage",
    "sphinx.ext.mathjax",
    "sphinx.ext.autosummary",
    "sphinx.ext.napoleon",
    "sphinx.ext.intersphinx",
    "sphinx_autodoc_typehints",
    "readthedocs_ext.readthedocs",
    "sphinx_copybutton",
]

# Generate the API documentation when building
autosummary_generate = True
napoleon_google_docstring = False
napoleon_numpy_docstring = True
napoleon_include_init_with_doc = False
napoleon_use_rtype = True
napoleon_use_param = True
napoleon_custom_sections = [("Params", "Parameters")]

intersphinx_mapping = dict(
    python=("https://docs.python.org/3", None),
    anndata=("https://anndata.readthedocs.io/en/latest/", None),
    scanpy=("https://scanpy.readthedocs.io/en/latest/", None),
    sklearn=("https://scikit-learn.org/stable/", None),
    scipy=("https://docs.scipy.org/doc/scipy/reference/", None),
    joblib=("https://joblib.readthedocs.io/en/stable/", None),
)

intersphinx_disabled_domains = ["std"]

templates_path = ["_templates"]
source_suffix = [".rst"]
master_doc = "index"

# -- Options for EPUB output
epub_show_urls = "footnote"
