"""
Feature Table and Taxonomy Parsing

This module loads the two tabular exports of a QIIME 2 run and joins them
into a single table of per-ASV abundances with parsed taxonomic ranks.

Key Responsibilities:
1. Parse the biom-convert "classic" feature table:
   - Line 1: "# Constructed from biom file" comment (skipped)
   - Line 2: header, "#OTU ID" followed by one column per sample
   - First column is always the feature identifier, every other column a sample

2. Parse the QIIME 2 taxonomy export:
   - Header: "Feature ID", "Taxon", optionally "Confidence"
   - "#q2:types" directive rows are ignored

3. Data Validation:
   - Missing files and missing required columns are fatal
   - Malformed rows (too many fields, empty feature id, missing lineage,
     non-numeric or negative abundance) are skipped with a warning
   - Duplicate feature ids keep their first occurrence, with a warning

4. Merge:
   - Inner join on ASV_ID; unmatched features on either side are dropped
     and counted in the log
   - Lineage strings are split into Domain..Species rank columns

Canonical Column Names:
- ASV_ID: feature identifier
- Abundance: read count of the selected sample
- Taxonomy: raw lineage string
- Confidence: classifier confidence (only if present in the export)

Example Usage:
    >>> from ednataxa.tables import load_merged_table
    >>> merged = load_merged_table(
    ...     "exported-data/feature-table.tsv",
    ...     "exported-data/taxonomy.tsv",
    ... )
    >>> merged[["ASV_ID", "Abundance", "Phylum"]].head()
"""

from typing import List, Optional, Sequence, Union
from pathlib import Path
import csv
import logging
import numpy as np
import pandas as pd

from .taxonomy import TAX_LEVELS, UNASSIGNED, add_rank_columns

logger = logging.getLogger(__name__)

ID_COLUMN = 'ASV_ID'
ABUNDANCE_COLUMN = 'Abundance'
LINEAGE_COLUMN = 'Taxonomy'
CONFIDENCE_COLUMN = 'Confidence'

TAXONOMY_COLUMN_MAP = {
    'Feature ID': ID_COLUMN,
    'Taxon': LINEAGE_COLUMN,
}

QIIME_DIRECTIVE_PREFIX = '#q2:'


# ============================================================================
# Low-level TSV Reading
# ============================================================================

def _count_leading_comment_lines(path: Path) -> int:
    """
    Count comment lines preceding the header row.

    A leading line is a comment if it starts with '#' and contains no tab,
    which separates "# Constructed from biom file" from the "#OTU ID\\t..."
    header that follows it.
    """
    n_comments = 0
    with open(path, 'r', encoding='utf-8') as fh:
        for line in fh:
            if line.startswith('#') and '\t' not in line:
                n_comments += 1
            else:
                break
    return n_comments


def _read_tsv(path: Path, skiprows: int = 0, label: str = "table") -> pd.DataFrame:
    """
    Read a TSV as strings, skipping rows with more fields than the header.

    Rows with fewer fields than the header are padded with NaN and left for
    the caller to validate.
    """
    skipped: List[List[str]] = []

    def _skip_bad_line(fields: List[str]) -> None:
        skipped.append(fields)
        return None

    try:
        df = pd.read_csv(
            path,
            sep='\t',
            skiprows=skiprows,
            dtype=str,
            keep_default_na=False,
            quoting=csv.QUOTE_NONE,
            engine='python',
            on_bad_lines=_skip_bad_line,
        )
    except pd.errors.EmptyDataError:
        raise pd.errors.EmptyDataError(f"{label.capitalize()} is empty: {path}")

    if skipped:
        examples = [fields[0] for fields in skipped[:5] if fields]
        logger.warning(
            f"Skipped {len(skipped)} malformed rows in {label} {path} "
            f"(too many fields). Examples: {examples}"
        )

    return df


def validate_required_columns(
    df: pd.DataFrame,
    required_columns: List[str],
    label: str = "table",
) -> bool:
    """
    Validate that a parsed table contains the required columns.

    Parameters
    ----------
    df : pd.DataFrame
        Parsed table
    required_columns : List[str]
        Required column names
    label : str
        Human-readable table name used in messages

    Returns
    -------
    bool
        True if all required columns are present

    Raises
    ------
    ValueError
        If any required column is missing
    """
    missing_columns = [col for col in required_columns if col not in df.columns]

    if missing_columns:
        logger.error(
            f"Missing required columns in {label}: {missing_columns}\n"
            f"Available columns: {list(df.columns)}"
        )
        raise ValueError(
            f"{label.capitalize()} is missing required columns: {missing_columns}. "
            f"Found columns: {list(df.columns)}"
        )

    logger.debug(f"All required columns present in {label}: {required_columns}")
    return True


def _drop_invalid_rows(df: pd.DataFrame, invalid: pd.Series, reason: str, label: str) -> pd.DataFrame:
    """Drop rows flagged as invalid and log a warning with examples."""
    if not invalid.any():
        return df

    examples = df.loc[invalid, ID_COLUMN].head(5).tolist()
    logger.warning(
        f"Skipped {int(invalid.sum())} rows in {label} with {reason}. "
        f"Examples: {examples}"
    )
    return df[~invalid].copy()


def _drop_duplicate_ids(df: pd.DataFrame, label: str) -> pd.DataFrame:
    """Keep the first occurrence of each feature id."""
    duplicates = df[ID_COLUMN].duplicated()
    if duplicates.any():
        dup_ids = df.loc[duplicates, ID_COLUMN].head(5).tolist()
        logger.warning(
            f"Found {int(duplicates.sum())} duplicate feature ids in {label}. "
            f"Examples: {dup_ids}. "
            f"Keeping only first occurrence of each duplicate."
        )
        df = df[~duplicates].copy()
    return df


# ============================================================================
# Feature Table
# ============================================================================

def select_sample_column(
    sample_columns: Sequence[str],
    sample_column: Optional[str] = None,
) -> str:
    """
    Choose which sample column supplies the abundances.

    Parameters
    ----------
    sample_columns : Sequence[str]
        Sample columns of the feature table (every column after the first)
    sample_column : str, optional
        Requested sample. If None, the first sample column is used.

    Returns
    -------
    str
        Selected column name

    Raises
    ------
    ValueError
        If the table has no sample columns or the requested one is absent
    """
    sample_columns = list(sample_columns)

    if not sample_columns:
        raise ValueError("Feature table has no sample columns")

    if sample_column is not None:
        if sample_column not in sample_columns:
            raise ValueError(
                f"Sample column '{sample_column}' not found in feature table. "
                f"Available samples: {sample_columns}"
            )
        return sample_column

    if len(sample_columns) > 1:
        logger.warning(
            f"Feature table has {len(sample_columns)} sample columns; "
            f"using the first one ('{sample_columns[0]}'). "
            f"Set sample_column to choose another."
        )
    return sample_columns[0]


def parse_feature_table(
    table_path: Union[str, Path],
    sample_column: Optional[str] = None,
) -> pd.DataFrame:
    """
    Parse a biom-convert TSV feature table into per-feature abundances.

    Parameters
    ----------
    table_path : Union[str, Path]
        Path to feature-table.tsv
    sample_column : str, optional
        Sample whose abundances are used (default: first sample column)

    Returns
    -------
    pd.DataFrame
        Columns ASV_ID (str) and Abundance (float), one row per feature

    Raises
    ------
    FileNotFoundError
        If the table does not exist
    ValueError
        If the table has no sample columns or ``sample_column`` is unknown
    pd.errors.EmptyDataError
        If the file has no header row

    Examples
    --------
    >>> abundances = parse_feature_table("exported-data/feature-table.tsv")
    >>> abundances.columns.tolist()
    ['ASV_ID', 'Abundance']
    """
    path = Path(table_path)
    label = "feature table"

    if not path.exists():
        raise FileNotFoundError(f"Feature table not found: {path}")

    logger.info(f"Reading feature table: {path}")

    n_comments = _count_leading_comment_lines(path)
    df = _read_tsv(path, skiprows=n_comments, label=label)

    id_column = df.columns[0]
    column = select_sample_column(df.columns[1:], sample_column)
    logger.info(f"Using sample column '{column}'")

    abundances = df[[id_column, column]].rename(
        columns={id_column: ID_COLUMN, column: ABUNDANCE_COLUMN}
    )
    abundances[ID_COLUMN] = abundances[ID_COLUMN].fillna('').str.strip()
    abundances[ABUNDANCE_COLUMN] = pd.to_numeric(
        abundances[ABUNDANCE_COLUMN].str.strip(), errors='coerce'
    ).astype(float)

    abundances = _drop_invalid_rows(
        abundances, abundances[ID_COLUMN] == '', "an empty feature id", label
    )
    values = abundances[ABUNDANCE_COLUMN]
    invalid = values.isna() | ~np.isfinite(values) | (values < 0)
    abundances = _drop_invalid_rows(
        abundances, invalid, "a missing, non-numeric or negative abundance", label
    )
    abundances = _drop_duplicate_ids(abundances, label)
    abundances = abundances.reset_index(drop=True)

    logger.info(
        f"Read {len(abundances)} features "
        f"(total abundance {abundances[ABUNDANCE_COLUMN].sum():,.0f})"
    )
    return abundances


# ============================================================================
# Taxonomy Table
# ============================================================================

def parse_taxonomy_table(taxonomy_path: Union[str, Path]) -> pd.DataFrame:
    """
    Parse a QIIME 2 taxonomy export.

    Parameters
    ----------
    taxonomy_path : Union[str, Path]
        Path to taxonomy.tsv

    Returns
    -------
    pd.DataFrame
        Columns ASV_ID, Taxonomy and, if present in the file, Confidence

    Raises
    ------
    FileNotFoundError
        If the file does not exist
    ValueError
        If "Feature ID" or "Taxon" columns are missing
    """
    path = Path(taxonomy_path)
    label = "taxonomy table"

    if not path.exists():
        raise FileNotFoundError(f"Taxonomy table not found: {path}")

    logger.info(f"Reading taxonomy table: {path}")

    df = _read_tsv(path, label=label)
    validate_required_columns(df, list(TAXONOMY_COLUMN_MAP), label)

    directives = df['Feature ID'].fillna('').str.startswith(QIIME_DIRECTIVE_PREFIX)
    if directives.any():
        logger.debug(f"Ignoring {int(directives.sum())} QIIME 2 directive rows")
        df = df[~directives]

    keep = list(TAXONOMY_COLUMN_MAP)
    if CONFIDENCE_COLUMN in df.columns:
        keep.append(CONFIDENCE_COLUMN)

    taxonomy = df[keep].rename(columns=TAXONOMY_COLUMN_MAP)
    taxonomy[ID_COLUMN] = taxonomy[ID_COLUMN].fillna('').str.strip()

    taxonomy = _drop_invalid_rows(
        taxonomy, taxonomy[ID_COLUMN] == '', "an empty feature id", label
    )
    taxonomy = _drop_invalid_rows(
        taxonomy, taxonomy[LINEAGE_COLUMN].isna(), "a missing lineage", label
    )
    taxonomy = _drop_duplicate_ids(taxonomy, label)

    if CONFIDENCE_COLUMN in taxonomy.columns:
        taxonomy[CONFIDENCE_COLUMN] = pd.to_numeric(
            taxonomy[CONFIDENCE_COLUMN], errors='coerce'
        )

    taxonomy = taxonomy.reset_index(drop=True)
    logger.info(f"Read taxonomy for {len(taxonomy)} features")
    return taxonomy


# ============================================================================
# Merge
# ============================================================================

def merge_abundance_taxonomy(
    abundances: pd.DataFrame,
    taxonomy: pd.DataFrame,
) -> pd.DataFrame:
    """
    Inner-join abundances and taxonomy on ASV_ID.

    Features present in only one table are dropped; their counts are logged
    as warnings.

    Parameters
    ----------
    abundances : pd.DataFrame
        Output of :func:`parse_feature_table`
    taxonomy : pd.DataFrame
        Output of :func:`parse_taxonomy_table`

    Returns
    -------
    pd.DataFrame
        Merged table in abundance-table order
    """
    abundance_ids = set(abundances[ID_COLUMN])
    taxonomy_ids = set(taxonomy[ID_COLUMN])

    n_no_taxonomy = len(abundance_ids - taxonomy_ids)
    n_no_abundance = len(taxonomy_ids - abundance_ids)

    if n_no_taxonomy:
        logger.warning(
            f"{n_no_taxonomy} features in the feature table have no taxonomy and were dropped"
        )
    if n_no_abundance:
        logger.warning(
            f"{n_no_abundance} features in the taxonomy table have no abundance and were dropped"
        )

    merged = pd.merge(abundances, taxonomy, on=ID_COLUMN, how='inner')

    if merged.empty:
        logger.warning("Merged table is empty; charts will contain no data")
    else:
        logger.info(f"Merged {len(merged)} features with taxonomy")

    return merged


def load_merged_table(
    feature_table: Union[str, Path],
    taxonomy_table: Union[str, Path],
    sample_column: Optional[str] = None,
    ranks: Sequence[str] = TAX_LEVELS,
    unassigned: str = UNASSIGNED,
) -> pd.DataFrame:
    """
    Load both exports, join them and add one column per taxonomic rank.

    Both files are parsed before anything else happens, so a missing input
    fails the run before any chart is attempted.

    Parameters
    ----------
    feature_table : Union[str, Path]
        Path to feature-table.tsv
    taxonomy_table : Union[str, Path]
        Path to taxonomy.tsv
    sample_column : str, optional
        Sample whose abundances are plotted
    ranks : Sequence[str]
        Ordered rank names
    unassigned : str
        Sentinel for missing ranks

    Returns
    -------
    pd.DataFrame
        Merged table with ASV_ID, Abundance, Taxonomy and one column per rank
    """
    abundances = parse_feature_table(feature_table, sample_column=sample_column)
    taxonomy = parse_taxonomy_table(taxonomy_table)

    merged = merge_abundance_taxonomy(abundances, taxonomy)
    return add_rank_columns(merged, LINEAGE_COLUMN, ranks, unassigned)
