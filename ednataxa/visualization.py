"""
Interactive Taxonomic Chart Generation

This module renders the merged abundance/taxonomy table as interactive
plotly charts, each written to a standalone HTML document that opens in any
browser without a server.

Figure Types:
1. Sunburst
   - Hierarchical path Domain -> Phylum -> Class
   - Sector size is the summed abundance of the features below it
   - Colour encodes Phylum

2. Treemap
   - Same hierarchy and weighting as the sunburst, as nested rectangles

3. Pie Chart
   - Abundance summed per Phylum
   - Features with an unassigned Phylum are excluded

Design Specifications:
- Colours come from a seaborn palette (default 'colorblind') assigned to the
  sorted rank labels, so a phylum has the same colour in every chart
- Unassigned ranks are drawn in grey
- Each file is written with a fixed div id; identical input gives identical
  output files
- An empty table produces empty charts rather than an error
- The three charts are rendered independently; a failure in one does not
  prevent the others from being written

Example Usage:
    >>> from ednataxa.tables import load_merged_table
    >>> from ednataxa.visualization import render_charts
    >>> merged = load_merged_table("feature-table.tsv", "taxonomy.tsv")
    >>> paths = render_charts(merged, output_dir=".")
    >>> sorted(paths)
    ['pie', 'sunburst', 'treemap']
"""

from typing import Dict, Iterable, Optional, Union
from functools import partial
from pathlib import Path
import logging
import pandas as pd
import plotly.express as px
import plotly.graph_objects as go
import seaborn as sns

from .config import VisualizationConfig
from .tables import ABUNDANCE_COLUMN
from .taxonomy import UNASSIGNED
from .utils import create_output_directory

logger = logging.getLogger(__name__)

UNASSIGNED_COLOR = '#BBBBBB'


class ChartRenderError(Exception):
    """Raised after rendering when one or more charts could not be written."""

    def __init__(self, failures: Dict[str, Exception]):
        self.failures = failures
        details = "; ".join(f"{name}: {error}" for name, error in failures.items())
        super().__init__(f"Failed to render {len(failures)} chart(s): {details}")


def get_taxon_colors(
    labels: Iterable[str],
    palette: str = 'colorblind',
    unassigned: str = UNASSIGNED,
) -> Dict[str, str]:
    """
    Assign a stable colour to each taxon label.

    Labels are sorted before colours are drawn from the palette, so the
    mapping depends only on the set of labels present.

    Parameters
    ----------
    labels : Iterable[str]
        Taxon labels (duplicates allowed)
    palette : str
        Seaborn palette name (default: "colorblind")
    unassigned : str
        Sentinel label, always drawn in grey

    Returns
    -------
    Dict[str, str]
        Mapping of label to hex colour
    """
    unique = sorted({str(label) for label in labels if label != unassigned})
    colors = {}
    if unique:
        hex_colors = sns.color_palette(palette, len(unique)).as_hex()
        colors = dict(zip(unique, hex_colors))
    colors[unassigned] = UNASSIGNED_COLOR
    return colors


def summarize_rank_abundance(
    df: pd.DataFrame,
    rank: str = 'Phylum',
    unassigned: str = UNASSIGNED,
) -> pd.DataFrame:
    """
    Sum abundance per taxon at one rank, excluding unassigned features.

    Parameters
    ----------
    df : pd.DataFrame
        Merged table with rank columns
    rank : str
        Rank to aggregate (default: "Phylum")
    unassigned : str
        Sentinel excluded from the summary

    Returns
    -------
    pd.DataFrame
        Columns ``rank`` and Abundance, one row per taxon, sorted by taxon
    """
    assigned = df[df[rank] != unassigned]
    summary = assigned.groupby(rank, as_index=False, sort=True)[ABUNDANCE_COLUMN].sum()
    return summary[[rank, ABUNDANCE_COLUMN]]


def _hierarchy_args(viz_cfg: VisualizationConfig, colors: Optional[Dict[str, str]]) -> dict:
    return dict(
        path=list(viz_cfg.hierarchy_ranks),
        values=ABUNDANCE_COLUMN,
        color=viz_cfg.color_rank,
        color_discrete_map=colors,
    )


def build_sunburst(
    df: pd.DataFrame,
    viz_cfg: Optional[VisualizationConfig] = None,
    colors: Optional[Dict[str, str]] = None,
) -> go.Figure:
    """Build the Domain -> Phylum -> Class sunburst weighted by abundance."""
    viz_cfg = viz_cfg or VisualizationConfig()

    if df.empty:
        fig = go.Figure(go.Sunburst(labels=[], parents=[], values=[]))
        fig.update_layout(title=viz_cfg.sunburst_title)
        return fig

    return px.sunburst(df, title=viz_cfg.sunburst_title, **_hierarchy_args(viz_cfg, colors))


def build_treemap(
    df: pd.DataFrame,
    viz_cfg: Optional[VisualizationConfig] = None,
    colors: Optional[Dict[str, str]] = None,
) -> go.Figure:
    """Build the treemap counterpart of :func:`build_sunburst`."""
    viz_cfg = viz_cfg or VisualizationConfig()

    if df.empty:
        fig = go.Figure(go.Treemap(labels=[], parents=[], values=[]))
        fig.update_layout(title=viz_cfg.treemap_title)
        return fig

    return px.treemap(df, title=viz_cfg.treemap_title, **_hierarchy_args(viz_cfg, colors))


def build_pie(
    df: pd.DataFrame,
    viz_cfg: Optional[VisualizationConfig] = None,
    colors: Optional[Dict[str, str]] = None,
    unassigned: str = UNASSIGNED,
) -> go.Figure:
    """
    Build a pie chart of abundance per taxon at the configured rank.

    Features whose rank is unassigned are left out, so the slices only
    cover classified abundance.
    """
    viz_cfg = viz_cfg or VisualizationConfig()
    rank = viz_cfg.pie_rank

    summary = summarize_rank_abundance(df, rank, unassigned)

    if summary.empty:
        fig = go.Figure(go.Pie(labels=[], values=[]))
        fig.update_layout(title=viz_cfg.pie_title)
        return fig

    return px.pie(
        summary,
        names=rank,
        values=ABUNDANCE_COLUMN,
        color=rank,
        color_discrete_map=colors,
        title=viz_cfg.pie_title,
    )


def write_chart(
    fig: go.Figure,
    output_path: Union[str, Path],
    div_id: str,
    include_plotlyjs: Union[bool, str] = True,
) -> Path:
    """
    Write a figure to a standalone HTML document.

    Parameters
    ----------
    fig : go.Figure
        Figure to write
    output_path : Union[str, Path]
        Destination HTML file
    div_id : str
        Fixed id of the chart div
    include_plotlyjs : Union[bool, str]
        True embeds plotly.js; "cdn" links it

    Returns
    -------
    Path
        Path of the written file
    """
    path = Path(output_path)
    fig.write_html(
        str(path),
        include_plotlyjs=include_plotlyjs,
        full_html=True,
        div_id=div_id,
    )
    return path


def render_charts(
    df: pd.DataFrame,
    output_dir: Union[str, Path] = ".",
    viz_cfg: Optional[VisualizationConfig] = None,
    unassigned: str = UNASSIGNED,
) -> Dict[str, Path]:
    """
    Render the sunburst, treemap and pie chart for a merged table.

    Every chart is attempted; failures are logged as they happen and
    reported together afterwards.

    Parameters
    ----------
    df : pd.DataFrame
        Merged table from :func:`ednataxa.tables.load_merged_table`
    output_dir : Union[str, Path]
        Directory receiving the three HTML files (default: current directory)
    viz_cfg : VisualizationConfig, optional
        Chart configuration (default: VisualizationConfig())
    unassigned : str
        Sentinel for unresolved ranks

    Returns
    -------
    Dict[str, Path]
        Written file per chart name ("sunburst", "treemap", "pie")

    Raises
    ------
    ChartRenderError
        If any chart failed, after all charts have been attempted
    """
    viz_cfg = viz_cfg or VisualizationConfig()
    output_dir = create_output_directory(output_dir)

    labels = pd.concat([df[viz_cfg.color_rank], df[viz_cfg.pie_rank]]) if not df.empty else []
    colors = get_taxon_colors(labels, viz_cfg.color_palette, unassigned)

    charts = [
        ('sunburst', build_sunburst, viz_cfg.sunburst_filename),
        ('treemap', build_treemap, viz_cfg.treemap_filename),
        ('pie', partial(build_pie, unassigned=unassigned), viz_cfg.pie_filename),
    ]

    written = {}
    failures = {}
    for name, builder, filename in charts:
        logger.info(f"Generating interactive {name} chart...")
        try:
            fig = builder(df, viz_cfg, colors)
            written[name] = write_chart(
                fig,
                output_dir / filename,
                div_id=f"taxonomic-{name}",
                include_plotlyjs=viz_cfg.include_plotlyjs,
            )
            logger.info(f"  ✓ Saved {name} chart: {written[name]}")
        except Exception as e:
            logger.error(f"  ✗ Failed to render {name} chart: {e}", exc_info=True)
            failures[name] = e

    if failures:
        raise ChartRenderError(failures)

    return written
