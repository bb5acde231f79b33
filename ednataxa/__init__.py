"""
ednataxa: Taxonomic Composition Charts for eDNA Amplicon Data

ednataxa turns the outputs of a QIIME 2 amplicon analysis into interactive
taxonomic visualizations. It joins the exported ASV feature table with the
classifier's taxonomy, splits lineage strings into ranks, and writes
sunburst, treemap and pie charts as standalone HTML documents.

Core functionality includes:
- Parsing of biom-convert feature tables and QIIME 2 taxonomy exports
- Lineage splitting into Domain..Species ranks with an "Unassigned" sentinel
- Interactive plotly charts written to self-contained HTML files
- Optional wrappers around the upstream QIIME 2 import/DADA2/classification steps
"""

__version__ = "0.1.0"

from . import taxonomy
from . import tables
from . import visualization
from . import manifest
from . import qiime
from . import config
from . import utils

__all__ = [
    "taxonomy",
    "tables",
    "visualization",
    "manifest",
    "qiime",
    "config",
    "utils",
]
