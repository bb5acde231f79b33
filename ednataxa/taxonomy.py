"""
Taxonomic Lineage Parsing

This module turns the semicolon-delimited lineage strings produced by QIIME 2
classifiers into discrete rank columns suitable for hierarchical plotting.

Lineage Format:
    d__Eukaryota;p__Chordata;c__Actinopteri;o__...;f__...;g__...;s__...

Each segment carries a rank prefix made of a single lowercase letter and two
underscores. Prefixes are stripped, whitespace is trimmed, and ranks that are
missing or empty are filled with the "Unassigned" sentinel so that every row
has exactly one value per rank.

Example Usage:
    >>> from ednataxa.taxonomy import strip_rank_prefix, split_lineage
    >>> strip_rank_prefix("g__Alteromonas")
    'Alteromonas'
    >>> split_lineage("d__Eukaryota;p__Chordata")["Class"]
    'Unassigned'
"""

from typing import Dict, List, Optional, Sequence
import logging
import re
import pandas as pd

logger = logging.getLogger(__name__)

# Fixed rank order of SILVA-style lineages
TAX_LEVELS = ['Domain', 'Phylum', 'Class', 'Order', 'Family', 'Genus', 'Species']

UNASSIGNED = 'Unassigned'

LINEAGE_SEPARATOR = ';'

RANK_PREFIX_RE = re.compile(r'^[a-z]__')


def strip_rank_prefix(token: str) -> str:
    """
    Remove a leading rank prefix (e.g. ``g__``) from a lineage token.

    Tokens without a matching prefix are returned trimmed but otherwise
    unchanged.

    Parameters
    ----------
    token : str
        Single lineage segment

    Returns
    -------
    str
        Token with prefix and surrounding whitespace removed

    Examples
    --------
    >>> strip_rank_prefix("g__Alteromonas")
    'Alteromonas'
    >>> strip_rank_prefix("Unclassified")
    'Unclassified'
    >>> strip_rank_prefix(" p__")
    ''
    """
    return RANK_PREFIX_RE.sub('', token.strip()).strip()


def split_lineage(
    lineage: Optional[str],
    ranks: Sequence[str] = TAX_LEVELS,
    unassigned: str = UNASSIGNED,
) -> Dict[str, str]:
    """
    Split a lineage string into one cleaned value per rank.

    Parameters
    ----------
    lineage : str or None
        Semicolon-separated lineage string
    ranks : Sequence[str]
        Ordered rank names (default: Domain through Species)
    unassigned : str
        Sentinel for missing or empty ranks (default: "Unassigned")

    Returns
    -------
    Dict[str, str]
        Mapping of rank name to cleaned value, in rank order

    Notes
    -----
    Segments beyond the number of ranks are ignored. A missing lineage
    resolves every rank to the sentinel.
    """
    if lineage is None or (not isinstance(lineage, str) and pd.isna(lineage)):
        segments: List[str] = []
    else:
        segments = str(lineage).split(LINEAGE_SEPARATOR)

    values = {}
    for i, rank in enumerate(ranks):
        value = strip_rank_prefix(segments[i]) if i < len(segments) else ''
        values[rank] = value if value else unassigned
    return values


def add_rank_columns(
    df: pd.DataFrame,
    lineage_column: str = 'Taxonomy',
    ranks: Sequence[str] = TAX_LEVELS,
    unassigned: str = UNASSIGNED,
) -> pd.DataFrame:
    """
    Add one column per taxonomic rank parsed from a lineage column.

    Parameters
    ----------
    df : pd.DataFrame
        Table containing a lineage column
    lineage_column : str
        Name of the lineage column (default: "Taxonomy")
    ranks : Sequence[str]
        Ordered rank names
    unassigned : str
        Sentinel for missing or empty ranks

    Returns
    -------
    pd.DataFrame
        Copy of ``df`` with one string column per rank

    Raises
    ------
    ValueError
        If ``lineage_column`` is not present
    """
    if lineage_column not in df.columns:
        raise ValueError(f"Lineage column '{lineage_column}' not found in table")

    out = df.copy()
    ranks = list(ranks)

    split = pd.DataFrame(
        [split_lineage(value, ranks, unassigned) for value in out[lineage_column]],
        index=out.index,
        columns=ranks,
        dtype=object,
    )
    for rank in ranks:
        out[rank] = split[rank]

    if not out.empty:
        _log_rank_resolution(out, ranks, unassigned)

    return out


def _log_rank_resolution(df: pd.DataFrame, ranks: List[str], unassigned: str) -> None:
    """Log how many features were resolved at each rank."""
    total = len(df)
    logger.debug("Rank resolution:")
    for rank in ranks:
        resolved = int((df[rank] != unassigned).sum())
        logger.debug(f"  {rank}: {resolved}/{total} assigned")
