# ============================================================================
# VERSION - IMPLEMENTATION ORCHESTRATOR
# ============================================================================
# EPOCH: 1 - BLOCK ORCHESTRATION
# ============================================================================
"""
Version information for the Implementation Orchestrator.

This is the single source of truth for the application version.
Updated manually for each release.
"""
# Version format: major.minor.patch.build
# Criteria for 0.3 - branch exploration and selective merge
__version__ = "0.3.0.0"
__version_info__ = tuple(int(x) for x in __version__.split("."))

# Build metadata
BUILD_DATE = "2026-10-16"

# Checkpoint files written by this build carry this tag
CHECKPOINT_FORMAT_VERSION = 1
EPOCH = 1
CODENAME = "Implementation Orchestrator"
