"""
QIIME 2 Workflow Wrappers

This module runs the upstream amplicon steps that produce the tables plotted
by ednataxa. Every step is a thin wrapper around a QIIME 2 or biom-format
command; denoising, classification and format conversion all happen inside
those tools.

Workflow:
1. Write a paired-end manifest and import reads (demux.qza)
2. Denoise with DADA2 (table.qza, rep-seqs.qza, denoising-stats.qza)
3. Classify representative sequences with a pre-trained Naive-Bayes
   classifier (taxonomy.qza)
4. Export the feature table and taxonomy, and convert the BIOM table to TSV

Key Features:
- Tools are looked up in PATH before running
- Commands run with check=True; the workflow stops at the first failure
- stderr of a failed command is carried by the raised exception
- The classifier must already exist; it is never downloaded

Example Usage:
    >>> from ednataxa.manifest import PairedSample
    >>> from ednataxa.qiime import run_qiime_workflow
    >>> outputs = run_qiime_workflow(
    ...     [PairedSample("tara-pacific-sample", "ERR3444605_1.fastq", "ERR3444605_2.fastq")],
    ...     work_dir=".",
    ... )
    >>> outputs.feature_table_tsv
    PosixPath('exported-data/feature-table.tsv')
"""

from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Union
import logging
import shutil
import subprocess

from .config import QiimeConfig
from .manifest import PairedSample, write_paired_manifest
from .utils import check_external_tool, get_tool_installation_instructions

logger = logging.getLogger(__name__)

REQUIRED_TOOLS = ['qiime', 'biom']


class QiimeError(Exception):
    """Base exception for QIIME 2 workflow errors."""
    pass


class ToolNotFoundError(QiimeError):
    """A required command-line tool is not in PATH."""
    pass


class QiimeCommandError(QiimeError):
    """A workflow command exited with a non-zero status."""

    def __init__(self, cmd: List[str], returncode: int, stderr: str = ""):
        self.cmd = cmd
        self.returncode = returncode
        self.stderr = stderr
        message = f"Command failed with exit status {returncode}: {' '.join(cmd)}"
        if stderr:
            message += f"\n{stderr.strip()}"
        super().__init__(message)


@dataclass(frozen=True)
class QiimeOutputs:
    """Files produced by :func:`run_qiime_workflow`."""
    manifest: Path
    demux: Path
    table: Path
    rep_seqs: Path
    denoising_stats: Path
    taxonomy: Path
    feature_table_tsv: Path
    taxonomy_tsv: Path


def check_qiime_tools() -> Dict[str, bool]:
    """
    Check if the required command-line tools are available.

    Returns
    -------
    Dict[str, bool]
        Dictionary mapping tool names to availability status
    """
    return {tool: check_external_tool(tool) for tool in REQUIRED_TOOLS}


def run_command(cmd: List[str], description: str) -> subprocess.CompletedProcess:
    """
    Run one workflow command.

    Parameters
    ----------
    cmd : List[str]
        Command and arguments
    description : str
        Short description used in log messages

    Returns
    -------
    subprocess.CompletedProcess
        Completed process with captured output

    Raises
    ------
    ToolNotFoundError
        If the executable is not in PATH
    QiimeCommandError
        If the command exits with a non-zero status
    """
    if shutil.which(cmd[0]) is None:
        raise ToolNotFoundError(
            f"'{cmd[0]}' not found in PATH.\n{get_tool_installation_instructions(cmd[0])}"
        )

    logger.info(f"{description}: {' '.join(cmd)}")

    try:
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            text=True,
            check=True
        )
    except subprocess.CalledProcessError as e:
        logger.error(f"{description} failed:\n{e.stderr}")
        raise QiimeCommandError(cmd, e.returncode, e.stderr or "") from e

    for stream in (result.stdout, result.stderr):
        if stream:
            logger.debug(stream.strip())
    return result


def import_paired_reads(
    manifest_path: Union[str, Path],
    output_path: Union[str, Path],
    cfg: Optional[QiimeConfig] = None,
) -> Path:
    """Import paired-end reads listed in a manifest into demux.qza."""
    cfg = cfg or QiimeConfig()
    output_path = Path(output_path)
    cmd = [
        'qiime', 'tools', 'import',
        '--type', cfg.import_type,
        '--input-path', str(manifest_path),
        '--output-path', str(output_path),
        '--input-format', cfg.input_format,
    ]
    run_command(cmd, "Importing reads into QIIME 2")
    return output_path


def denoise_paired(
    demux_path: Union[str, Path],
    output_dir: Union[str, Path],
    cfg: Optional[QiimeConfig] = None,
) -> Dict[str, Path]:
    """
    Denoise paired-end reads with DADA2.

    Returns
    -------
    Dict[str, Path]
        Paths keyed "table", "rep_seqs" and "denoising_stats"
    """
    cfg = cfg or QiimeConfig()
    output_dir = Path(output_dir)
    outputs = {
        'table': output_dir / 'table.qza',
        'rep_seqs': output_dir / 'rep-seqs.qza',
        'denoising_stats': output_dir / 'denoising-stats.qza',
    }
    cmd = [
        'qiime', 'dada2', 'denoise-paired',
        '--i-demultiplexed-seqs', str(demux_path),
        '--p-trunc-len-f', str(cfg.trunc_len_f),
        '--p-trunc-len-r', str(cfg.trunc_len_r),
    ]
    if cfg.n_threads != 1:
        cmd += ['--p-n-threads', str(cfg.n_threads)]
    cmd += [
        '--o-table', str(outputs['table']),
        '--o-representative-sequences', str(outputs['rep_seqs']),
        '--o-denoising-stats', str(outputs['denoising_stats']),
    ]
    run_command(cmd, "Running DADA2 denoising")
    return outputs


def classify_reads(
    rep_seqs_path: Union[str, Path],
    classifier_path: Union[str, Path],
    output_path: Union[str, Path],
) -> Path:
    """
    Assign taxonomy to representative sequences with a trained classifier.

    Raises
    ------
    FileNotFoundError
        If the classifier artifact does not exist
    """
    classifier_path = Path(classifier_path)
    if not classifier_path.exists():
        raise FileNotFoundError(
            f"Classifier not found: {classifier_path}. "
            "Provide a pre-trained classifier artifact (.qza)."
        )

    output_path = Path(output_path)
    cmd = [
        'qiime', 'feature-classifier', 'classify-sklearn',
        '--i-classifier', str(classifier_path),
        '--i-reads', str(rep_seqs_path),
        '--o-classification', str(output_path),
    ]
    run_command(cmd, "Assigning taxonomy")
    return output_path


def export_artifact(artifact_path: Union[str, Path], output_dir: Union[str, Path]) -> Path:
    """Export the contents of a QIIME 2 artifact into a directory."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    cmd = [
        'qiime', 'tools', 'export',
        '--input-path', str(artifact_path),
        '--output-path', str(output_dir),
    ]
    run_command(cmd, f"Exporting {Path(artifact_path).name}")
    return output_dir


def convert_biom_to_tsv(biom_path: Union[str, Path], tsv_path: Union[str, Path]) -> Path:
    """Convert a BIOM feature table into the classic TSV format."""
    tsv_path = Path(tsv_path)
    cmd = [
        'biom', 'convert',
        '-i', str(biom_path),
        '-o', str(tsv_path),
        '--to-tsv',
    ]
    run_command(cmd, "Converting BIOM table to TSV")
    return tsv_path


def run_qiime_workflow(
    samples: Iterable[PairedSample],
    work_dir: Union[str, Path] = ".",
    cfg: Optional[QiimeConfig] = None,
) -> QiimeOutputs:
    """
    Run import, denoising, classification and export in sequence.

    Every step runs on each call; the first failing step raises and stops
    the workflow.

    Parameters
    ----------
    samples : Iterable[PairedSample]
        Samples to import
    work_dir : Union[str, Path]
        Directory receiving artifacts and exports (default: current directory)
    cfg : QiimeConfig, optional
        Workflow parameters

    Returns
    -------
    QiimeOutputs
        Paths of the produced artifacts and exported tables

    Raises
    ------
    FileNotFoundError
        If a read file or the classifier is missing
    QiimeError
        If a tool is missing or a command fails
    """
    cfg = cfg or QiimeConfig()
    work_dir = Path(work_dir)
    work_dir.mkdir(parents=True, exist_ok=True)
    export_dir = work_dir / cfg.export_dir

    # Fail before any tool runs if the classifier is absent
    if not cfg.classifier_path.exists():
        raise FileNotFoundError(f"Classifier not found: {cfg.classifier_path}")

    logger.info("STEP 1: Importing data into QIIME 2")
    manifest = write_paired_manifest(samples, work_dir / 'manifest.tsv')
    demux = import_paired_reads(manifest, work_dir / 'demux.qza', cfg)

    logger.info("STEP 2: Running DADA2 for QC and ASV generation")
    denoised = denoise_paired(demux, work_dir, cfg)

    logger.info("STEP 3: Assigning taxonomy")
    taxonomy = classify_reads(denoised['rep_seqs'], cfg.classifier_path, work_dir / 'taxonomy.qza')

    logger.info("STEP 4: Exporting data for plotting")
    export_artifact(denoised['table'], export_dir)
    feature_table_tsv = convert_biom_to_tsv(
        export_dir / 'feature-table.biom', export_dir / 'feature-table.tsv'
    )
    export_artifact(taxonomy, export_dir)

    return QiimeOutputs(
        manifest=manifest,
        demux=demux,
        table=denoised['table'],
        rep_seqs=denoised['rep_seqs'],
        denoising_stats=denoised['denoising_stats'],
        taxonomy=taxonomy,
        feature_table_tsv=feature_table_tsv,
        taxonomy_tsv=export_dir / 'taxonomy.tsv',
    )
