"""
SecretPlan - local encrypted credential vault
"""

from secretplan.constants import APP_NAME, APP_VERSION

__version__ = APP_VERSION

__all__ = ["APP_NAME", "__version__"]
