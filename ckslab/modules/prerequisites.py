import logging

from .errors import PrerequisiteError

logger = logging.getLogger("ckslab.prerequisites")

INSTALL_HINT = "Install Multipass from https://multipass.run/install (macOS: brew install --cask multipass)"


def check_prerequisites(backend) -> None:
    """Make sure the VM backend binary is installed."""
    logger.info("🔍 Checking prerequisites...")
    if not backend.available():
        raise PrerequisiteError(f"Multipass is not installed. {INSTALL_HINT}")
    logger.info("✅ Prerequisites check passed")
