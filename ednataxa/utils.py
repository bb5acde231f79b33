"""
Helper Functions and Utilities

This module provides common utility functions used throughout the ednataxa
package: logging configuration, external tool verification and output path
handling.

Key Utilities:
1. Logging Configuration
   - Centralized setup of the "ednataxa" package logger
   - Console output plus optional log file

2. External Tool Management
   - Check for required command-line tools (qiime, biom)
   - Helpful error messages with installation instructions

3. File Operations
   - Output directory creation with logging
   - Human-readable elapsed time for run summaries

Example Usage:
    >>> from ednataxa.utils import setup_logging, check_external_tool
    >>> logger = setup_logging(log_level="DEBUG")
    >>> if check_external_tool("qiime"):
    ...     print("QIIME 2 is available")
"""

from typing import Optional, Union
from pathlib import Path
import logging
import shutil
import sys

logger = logging.getLogger(__name__)


# ============================================================================
# Logging Configuration
# ============================================================================

def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    format_string: Optional[str] = None,
) -> logging.Logger:
    """
    Configure logging for ednataxa.

    Sets up the package logger with console and optional file output.

    Parameters
    ----------
    log_level : str, optional
        Logging level: DEBUG, INFO, WARNING, ERROR, or CRITICAL (default: INFO)
    log_file : str, optional
        Path to log file. If None, logs only to console (default: None)
    format_string : str, optional
        Custom format string for log messages. If None, uses default format

    Returns
    -------
    logging.Logger
        Configured logger instance

    Notes
    -----
    The default format includes timestamp, level, and message:
    [2025-11-03 10:30:45] INFO: Merged 412 features with taxonomy
    """
    package_logger = logging.getLogger("ednataxa")
    package_logger.setLevel(getattr(logging, log_level.upper()))

    # Remove existing handlers to avoid duplicates
    package_logger.handlers.clear()

    if format_string is None:
        format_string = "[%(asctime)s] %(levelname)s: %(message)s"

    formatter = logging.Formatter(format_string, datefmt="%Y-%m-%d %H:%M:%S")

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, log_level.upper()))
    console_handler.setFormatter(formatter)
    package_logger.addHandler(console_handler)

    if log_file is not None:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_file, mode='a', encoding='utf-8')
        file_handler.setLevel(getattr(logging, log_level.upper()))
        file_handler.setFormatter(formatter)
        package_logger.addHandler(file_handler)

        package_logger.info(f"Logging to file: {log_file}")

    return package_logger


# ============================================================================
# External Tool Management
# ============================================================================

def check_external_tool(tool_name: str) -> bool:
    """
    Check if an external command-line tool is available in PATH.

    Parameters
    ----------
    tool_name : str
        Name of tool to check (e.g., 'qiime', 'biom')

    Returns
    -------
    bool
        True if the tool is found, False otherwise

    Examples
    --------
    >>> if not check_external_tool("biom"):
    ...     print("Please install biom-format")
    """
    tool_path = shutil.which(tool_name)

    if tool_path is None:
        logger.warning(f"Tool '{tool_name}' not found in PATH")
        logger.info(get_tool_installation_instructions(tool_name))
        return False

    logger.debug(f"Found {tool_name} at: {tool_path}")
    return True


def get_tool_installation_instructions(tool_name: str) -> str:
    """
    Get installation instructions for missing external tools.

    Parameters
    ----------
    tool_name : str
        Name of tool

    Returns
    -------
    str
        Installation instructions
    """
    instructions = {
        "qiime": """
QIIME 2 Installation:
  Follow the amplicon distribution instructions at https://docs.qiime2.org
  then activate the environment, e.g.:
    conda activate qiime2-amplicon-2025.7
""",
        "biom": """
biom-format Installation:
  Via conda: conda install -c conda-forge biom-format
  Via pip:   pip install biom-format
  (included in every QIIME 2 environment)
""",
    }

    return instructions.get(
        tool_name.lower(),
        f"Please install {tool_name} and ensure it is in your system PATH"
    )


# ============================================================================
# File I/O and Path Handling
# ============================================================================

def create_output_directory(output_dir: Union[str, Path]) -> Path:
    """
    Create output directory if it doesn't exist.

    Parameters
    ----------
    output_dir : Union[str, Path]
        Path to output directory

    Returns
    -------
    Path
        Path object for output directory

    Raises
    ------
    OSError
        If directory cannot be created due to permissions or other issues
    """
    path = Path(output_dir)

    try:
        path.mkdir(parents=True, exist_ok=True)
        logger.debug(f"Created/verified output directory: {path}")
        return path
    except OSError as e:
        logger.error(f"Failed to create directory {path}: {e}")
        raise


def format_elapsed_time(seconds: float) -> str:
    """
    Format elapsed time in human-readable format.

    Examples
    --------
    >>> format_elapsed_time(45)
    '45s'
    >>> format_elapsed_time(3700)
    '1h 1m'
    """
    if seconds < 60:
        return f"{seconds:.0f}s"

    minutes = seconds / 60
    if minutes < 60:
        return f"{minutes:.1f}m"

    hours = minutes / 60
    minutes_remainder = minutes % 60
    return f"{int(hours)}h {int(minutes_remainder)}m"
