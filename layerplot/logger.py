"""Layerplot logger.

This module provides the main logger instance for the layerplot package.
It configures Python's warnings system to be captured by the logging system
and creates a logger instance named "layerplot" for use throughout the package.
"""

import logging

# Route warnings issued through the warnings module into logging.
logging.captureWarnings(True)

# Main logger instance for the layerplot package.
# Import it directly: `from layerplot.logger import LAYERPLOT_LOGGER`
LAYERPLOT_LOGGER: logging.Logger = logging.getLogger("layerplot")
