"""
Package initializer for arteligibility.
"""

__version__ = "1.0.0"

# Governance version metadata, stamped into all output artifacts
GOVERNANCE_VERSION = "v2026.01"
ENGINE_VERSION = __version__
RULES_VERSIONS = {
    "eligibility": "contract_v1",
}

__all__ = ["__version__", "GOVERNANCE_VERSION", "ENGINE_VERSION", "RULES_VERSIONS"]
