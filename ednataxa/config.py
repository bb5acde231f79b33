"""
Configuration Management for ednataxa

This module provides the configuration system for the plotting step and the
upstream QIIME 2 workflow, using frozen dataclasses for clean parameter
management. The configuration system supports:

1. Default parameter values matching the reference 18S workflow
2. Loading configuration from YAML/JSON files
3. Environment variable overrides
4. Validation in __post_init__
5. Hierarchical configuration with component-specific settings

Configuration Structure:
- InputConfig: Locations of the exported feature table and taxonomy
- TaxonomyConfig: Rank names and the sentinel for unresolved ranks
- VisualizationConfig: Chart hierarchy, titles, file names and styling
- QiimeConfig: Parameters of the QIIME 2 import/DADA2/classification steps
- PipelineConfig: Master configuration combining all components

Example Usage:
    >>> from ednataxa.config import get_default_config, load_config_from_file
    >>>
    >>> # Use defaults
    >>> config = get_default_config()
    >>> print(config.qiime.trunc_len_f)
    240
    >>>
    >>> # Load from file
    >>> config = load_config_from_file("my_analysis.yaml")
    >>>
    >>> # Update specific parameters
    >>> custom_config = config.update(
    ...     inputs__sample_column="tara-pacific-sample",
    ...     visualization__include_plotlyjs="cdn"
    ... )
"""

from dataclasses import dataclass, field, asdict, replace
from pathlib import Path
from typing import Optional, List, Dict, Any, Union
import os
import json
import logging

import yaml

from .taxonomy import TAX_LEVELS, UNASSIGNED

logger = logging.getLogger(__name__)


# ============================================================================
# Input Configuration
# ============================================================================

@dataclass(frozen=True)
class InputConfig:
    """
    Locations of the tables exported from QIIME 2.

    Attributes
    ----------
    feature_table : Path
        biom-convert TSV feature table (default: exported-data/feature-table.tsv)

    taxonomy_table : Path
        QIIME 2 taxonomy export (default: exported-data/taxonomy.tsv)

    sample_column : Optional[str]
        Sample column whose abundances are plotted (default: None).
        None selects the first sample column of the feature table.
    """
    feature_table: Path = field(default_factory=lambda: Path("exported-data") / "feature-table.tsv")
    taxonomy_table: Path = field(default_factory=lambda: Path("exported-data") / "taxonomy.tsv")
    sample_column: Optional[str] = None

    def __post_init__(self):
        """Normalize paths and the sample column name."""
        for name in ('feature_table', 'taxonomy_table'):
            value = getattr(self, name)
            if isinstance(value, str):
                object.__setattr__(self, name, Path(value))
        if self.sample_column is not None:
            # Numeric sample ids arrive as int from YAML and env overrides
            object.__setattr__(self, 'sample_column', str(self.sample_column))
            if not self.sample_column.strip():
                raise ValueError("sample_column must be a non-empty string or None")


# ============================================================================
# Taxonomy Configuration
# ============================================================================

@dataclass(frozen=True)
class TaxonomyConfig:
    """
    Rank layout of the lineage strings.

    Attributes
    ----------
    ranks : List[str]
        Ordered rank names, one column each
        (default: Domain, Phylum, Class, Order, Family, Genus, Species)

    unassigned_label : str
        Value used for missing or empty ranks (default: "Unassigned")
    """
    ranks: List[str] = field(default_factory=lambda: list(TAX_LEVELS))
    unassigned_label: str = UNASSIGNED

    def __post_init__(self):
        """Validate configuration parameters."""
        if not self.ranks:
            raise ValueError("ranks must not be empty")
        if len(set(self.ranks)) != len(self.ranks):
            raise ValueError(f"ranks must be unique, got {self.ranks}")
        if not self.unassigned_label:
            raise ValueError("unassigned_label must not be empty")


# ============================================================================
# Visualization Configuration
# ============================================================================

@dataclass(frozen=True)
class VisualizationConfig:
    """
    Configuration for the interactive taxonomic charts.

    Attributes
    ----------
    hierarchy_ranks : List[str]
        Ranks forming the sunburst/treemap path (default: Domain, Phylum, Class)

    color_rank : str
        Rank encoded by colour in the hierarchical charts (default: "Phylum")

    pie_rank : str
        Rank aggregated in the pie chart (default: "Phylum")

    color_palette : str
        Seaborn palette used for rank colours (default: "colorblind")

    include_plotlyjs : Union[bool, str]
        True embeds plotly.js so each file opens offline (default: True).
        "cdn" links plotly.js from the CDN instead, producing small files.

    sunburst_filename, treemap_filename, pie_filename : str
        Output file names

    sunburst_title, treemap_title, pie_title : str
        Chart titles

    Notes
    -----
    Chart files are written with fixed div ids so repeated runs on the same
    input produce identical documents.
    """
    hierarchy_ranks: List[str] = field(default_factory=lambda: ['Domain', 'Phylum', 'Class'])
    color_rank: str = 'Phylum'
    pie_rank: str = 'Phylum'
    color_palette: str = 'colorblind'
    include_plotlyjs: Union[bool, str] = True
    sunburst_filename: str = 'taxonomic_sunburst.html'
    treemap_filename: str = 'taxonomic_treemap.html'
    pie_filename: str = 'taxonomic_pie_chart.html'
    sunburst_title: str = 'Hierarchical Taxonomic Composition'
    treemap_title: str = 'Hierarchical Taxonomic Composition (Treemap View)'
    pie_title: str = 'Taxonomic Composition at Phylum Level'

    def __post_init__(self):
        """Validate configuration parameters."""
        if not self.hierarchy_ranks:
            raise ValueError("hierarchy_ranks must not be empty")
        if self.include_plotlyjs not in (True, False, 'cdn'):
            raise ValueError(
                f"include_plotlyjs must be True, False or 'cdn', got {self.include_plotlyjs!r}"
            )
        filenames = [self.sunburst_filename, self.treemap_filename, self.pie_filename]
        if len(set(filenames)) != len(filenames):
            raise ValueError(f"Chart file names must be distinct, got {filenames}")


# ============================================================================
# QIIME 2 Configuration
# ============================================================================

@dataclass(frozen=True)
class QiimeConfig:
    """
    Parameters of the upstream QIIME 2 workflow.

    Attributes
    ----------
    trunc_len_f : int
        DADA2 forward read truncation length (default: 240)

    trunc_len_r : int
        DADA2 reverse read truncation length (default: 240)

    n_threads : int
        DADA2 thread count; 0 uses all cores (default: 1)

    classifier_path : Path
        Pre-trained Naive-Bayes classifier artifact
        (default: silva-138-99-515-806-nb-classifier.qza)

    import_type : str
        Semantic type of the imported reads

    input_format : str
        QIIME 2 manifest format

    export_dir : str
        Directory name for exported tables, relative to the work directory
        (default: "exported-data")

    Notes
    -----
    The classifier must already exist on disk; it is never downloaded.
    """
    trunc_len_f: int = 240
    trunc_len_r: int = 240
    n_threads: int = 1
    classifier_path: Path = field(default_factory=lambda: Path("silva-138-99-515-806-nb-classifier.qza"))
    import_type: str = 'SampleData[PairedEndSequencesWithQuality]'
    input_format: str = 'PairedEndFastqManifestPhred33V2'
    export_dir: str = 'exported-data'

    def __post_init__(self):
        """Validate configuration parameters."""
        if isinstance(self.classifier_path, str):
            object.__setattr__(self, 'classifier_path', Path(self.classifier_path))
        if self.trunc_len_f < 0 or self.trunc_len_r < 0:
            raise ValueError("truncation lengths must be non-negative")
        if self.n_threads < 0:
            raise ValueError("n_threads must be non-negative")


# ============================================================================
# Master Pipeline Configuration
# ============================================================================

@dataclass(frozen=True)
class PipelineConfig:
    """
    Master configuration for ednataxa.

    Attributes
    ----------
    inputs : InputConfig
        Exported table locations

    taxonomy : TaxonomyConfig
        Rank layout

    visualization : VisualizationConfig
        Chart configuration

    qiime : QiimeConfig
        Upstream workflow configuration

    log_level : str
        Logging level (default: "INFO")

    output_dir : Path
        Directory receiving the chart files (default: current directory)
    """
    inputs: InputConfig = field(default_factory=InputConfig)
    taxonomy: TaxonomyConfig = field(default_factory=TaxonomyConfig)
    visualization: VisualizationConfig = field(default_factory=VisualizationConfig)
    qiime: QiimeConfig = field(default_factory=QiimeConfig)
    log_level: str = "INFO"
    output_dir: Path = field(default_factory=lambda: Path("."))

    def __post_init__(self):
        """Validate and normalize configuration."""
        if isinstance(self.output_dir, str):
            object.__setattr__(self, 'output_dir', Path(self.output_dir))

        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if self.log_level.upper() not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")

        # Chart ranks must be columns produced by the lineage split
        viz = self.visualization
        charted = list(viz.hierarchy_ranks) + [viz.color_rank, viz.pie_rank]
        unknown = [rank for rank in charted if rank not in self.taxonomy.ranks]
        if unknown:
            raise ValueError(
                f"Visualization ranks {unknown} are not in taxonomy ranks {self.taxonomy.ranks}"
            )

    def update(self, **kwargs) -> 'PipelineConfig':
        """
        Create a new configuration with updated values.

        Supports nested updates using double underscore notation:
        config.update(qiime__trunc_len_f=200)

        Parameters
        ----------
        **kwargs
            Configuration parameters to update. Use double underscore
            for nested parameters (e.g., inputs__sample_column)

        Returns
        -------
        PipelineConfig
            New configuration object with updates
        """
        top_level = {}
        nested = {}

        for key, value in kwargs.items():
            if '__' in key:
                component, param = key.split('__', 1)
                nested.setdefault(component, {})[param] = value
            else:
                top_level[key] = value

        for component, updates in nested.items():
            current = getattr(self, component)
            top_level[component] = replace(current, **updates)

        return replace(self, **top_level)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to a nested dictionary."""
        return asdict(self)

    def to_yaml(self, output_path: Union[str, Path]) -> None:
        """
        Save configuration to YAML file.

        Parameters
        ----------
        output_path : Union[str, Path]
            Output file path
        """
        config_dict = _convert_paths_to_strings(self.to_dict())

        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w') as f:
            yaml.safe_dump(config_dict, f, default_flow_style=False, sort_keys=False)

        logger.info(f"Configuration saved to {path}")

    def to_json(self, output_path: Union[str, Path]) -> None:
        """
        Save configuration to JSON file.

        Parameters
        ----------
        output_path : Union[str, Path]
            Output file path
        """
        config_dict = _convert_paths_to_strings(self.to_dict())

        path = Path(output_path)
        path.parent.mkdir(parents=True, exist_ok=True)

        with open(path, 'w') as f:
            json.dump(config_dict, f, indent=2)

        logger.info(f"Configuration saved to {path}")


# ============================================================================
# Helper Functions
# ============================================================================

def get_default_config() -> PipelineConfig:
    """
    Get default pipeline configuration.

    Examples
    --------
    >>> config = get_default_config()
    >>> print(config.visualization.hierarchy_ranks)
    ['Domain', 'Phylum', 'Class']
    """
    return PipelineConfig()


def load_config_from_file(config_path: Union[str, Path]) -> PipelineConfig:
    """
    Load configuration from YAML or JSON file.

    Automatically detects file format based on extension.

    Parameters
    ----------
    config_path : Union[str, Path]
        Path to configuration file (.yaml, .yml, or .json)

    Returns
    -------
    PipelineConfig
        Loaded configuration

    Raises
    ------
    FileNotFoundError
        If configuration file doesn't exist
    ValueError
        If file format is not supported
    """
    path = Path(config_path)

    if not path.exists():
        raise FileNotFoundError(f"Configuration file not found: {path}")

    suffix = path.suffix.lower()

    if suffix in ['.yaml', '.yml']:
        with open(path, 'r') as f:
            config_dict = yaml.safe_load(f) or {}
    elif suffix == '.json':
        with open(path, 'r') as f:
            config_dict = json.load(f)
    else:
        raise ValueError(f"Unsupported config file format: {suffix}")

    logger.info(f"Loaded configuration from {path}")
    return _dict_to_config(config_dict)


_COMPONENTS = {
    'inputs': InputConfig,
    'taxonomy': TaxonomyConfig,
    'visualization': VisualizationConfig,
    'qiime': QiimeConfig,
}


def _dict_to_config(config_dict: Dict[str, Any]) -> PipelineConfig:
    """
    Convert dictionary to PipelineConfig object.

    Handles nested configuration structures; string paths are converted in
    each component's __post_init__.
    """
    config_dict = dict(config_dict)
    nested_configs = {}

    for name, cls in _COMPONENTS.items():
        if name in config_dict:
            nested_configs[name] = cls(**(config_dict.pop(name) or {}))

    return PipelineConfig(**nested_configs, **config_dict)


def _convert_paths_to_strings(obj: Any) -> Any:
    """Recursively convert Path objects to strings for serialization."""
    if isinstance(obj, Path):
        return str(obj)
    elif isinstance(obj, dict):
        return {k: _convert_paths_to_strings(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_convert_paths_to_strings(item) for item in obj]
    elif isinstance(obj, tuple):
        return [_convert_paths_to_strings(item) for item in obj]
    else:
        return obj


def load_config_from_env() -> Dict[str, Any]:
    """
    Load configuration overrides from environment variables.

    Environment variables should be prefixed with EDNATAXA_
    and use double underscores for nesting:

    EDNATAXA_QIIME__TRUNC_LEN_F=200
    EDNATAXA_LOG_LEVEL=DEBUG

    Returns
    -------
    Dict[str, Any]
        Configuration overrides suitable for PipelineConfig.update

    Examples
    --------
    >>> import os
    >>> os.environ['EDNATAXA_INPUTS__SAMPLE_COLUMN'] = 'tara-pacific-sample'
    >>> config = get_default_config().update(**load_config_from_env())
    """
    prefix = "EDNATAXA_"
    overrides = {}

    for key, value in os.environ.items():
        if key.startswith(prefix):
            config_key = key[len(prefix):].lower()
            overrides[config_key] = _parse_env_value(value)

    if overrides:
        logger.debug(f"Loaded {len(overrides)} configuration overrides from environment")

    return overrides


def _parse_env_value(value: str) -> Any:
    """Parse environment variable value to appropriate type."""
    if value.lower() in ['true', 'yes']:
        return True
    if value.lower() in ['false', 'no']:
        return False

    try:
        return int(value)
    except ValueError:
        pass

    try:
        return float(value)
    except ValueError:
        pass

    return value


def validate_config(config: PipelineConfig) -> List[str]:
    """
    Validate configuration and return list of warnings.

    Checks for missing input files and unusual parameter values.

    Parameters
    ----------
    config : PipelineConfig
        Configuration to validate

    Returns
    -------
    List[str]
        List of warning messages (empty if no issues)
    """
    warnings = []

    for label, path in [
        ("Feature table", config.inputs.feature_table),
        ("Taxonomy table", config.inputs.taxonomy_table),
    ]:
        if not path.exists():
            warnings.append(f"{label} not found: {path}")

    if config.qiime.trunc_len_f == 0 or config.qiime.trunc_len_r == 0:
        warnings.append(
            "A DADA2 truncation length of 0 disables truncation; "
            "low-quality read tails may prevent pair merging."
        )

    if config.visualization.include_plotlyjs is False:
        warnings.append(
            "include_plotlyjs is False; chart files will not render without plotly.js."
        )

    if config.visualization.color_rank not in config.visualization.hierarchy_ranks:
        warnings.append(
            f"Colour rank '{config.visualization.color_rank}' is not part of the "
            f"hierarchy {config.visualization.hierarchy_ranks}."
        )

    return warnings


# ============================================================================
# Configuration Templates
# ============================================================================

def create_config_template(output_path: Union[str, Path], format: str = "yaml") -> None:
    """
    Create a configuration template file holding the defaults.

    Parameters
    ----------
    output_path : Union[str, Path]
        Output file path
    format : str
        File format: "yaml" or "json" (default: "yaml")
    """
    config = get_default_config()

    if format.lower() == "yaml":
        config.to_yaml(output_path)
    elif format.lower() == "json":
        config.to_json(output_path)
    else:
        raise ValueError(f"Unsupported format: {format}")

    logger.info(f"Created configuration template: {output_path}")
