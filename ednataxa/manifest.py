"""
QIIME 2 Manifest Writing

Writes the tab-separated manifest consumed by ``qiime tools import`` with
``--input-format PairedEndFastqManifestPhred33V2``:

    sample-id   forward-absolute-filepath   reverse-absolute-filepath
    sample-1    /data/sample-1_R1.fastq.gz  /data/sample-1_R2.fastq.gz

QIIME 2 requires absolute paths, so every read path is resolved before it
is written.
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Union
import logging
import pandas as pd

logger = logging.getLogger(__name__)

MANIFEST_COLUMNS = [
    'sample-id',
    'forward-absolute-filepath',
    'reverse-absolute-filepath',
]


@dataclass(frozen=True)
class PairedSample:
    """One sample's paired-end read files."""
    sample_id: str
    forward: Path
    reverse: Path

    def __post_init__(self):
        object.__setattr__(self, 'forward', Path(self.forward))
        object.__setattr__(self, 'reverse', Path(self.reverse))


def build_manifest(samples: Iterable[PairedSample]) -> pd.DataFrame:
    """
    Build and validate the manifest table.

    Raises
    ------
    ValueError
        If there are no samples, or a sample id is empty or repeated
    FileNotFoundError
        If a read file does not exist
    """
    samples = list(samples)
    if not samples:
        raise ValueError("At least one sample is required to write a manifest")

    rows: List[List[str]] = []
    seen = set()
    for sample in samples:
        sample_id = sample.sample_id.strip()
        if not sample_id:
            raise ValueError("Sample ids must be non-empty")
        if sample_id in seen:
            raise ValueError(f"Duplicate sample id in manifest: {sample_id}")
        seen.add(sample_id)

        for read_path in (sample.forward, sample.reverse):
            if not read_path.exists():
                raise FileNotFoundError(f"Read file not found for {sample_id}: {read_path}")

        rows.append([
            sample_id,
            str(sample.forward.resolve()),
            str(sample.reverse.resolve()),
        ])

    return pd.DataFrame(rows, columns=MANIFEST_COLUMNS)


def write_paired_manifest(
    samples: Iterable[PairedSample],
    manifest_path: Union[str, Path],
) -> Path:
    """
    Write a paired-end FASTQ manifest.

    Parameters
    ----------
    samples : Iterable[PairedSample]
        Samples to include
    manifest_path : Union[str, Path]
        Destination TSV

    Returns
    -------
    Path
        Path of the written manifest

    Examples
    --------
    >>> write_paired_manifest(
    ...     [PairedSample("tara-pacific-sample", "ERR3444605_1.fastq", "ERR3444605_2.fastq")],
    ...     "manifest.tsv",
    ... )
    """
    manifest = build_manifest(samples)

    path = Path(manifest_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    manifest.to_csv(path, sep='\t', index=False)

    logger.info(f"Wrote manifest with {len(manifest)} samples: {path}")
    return path
