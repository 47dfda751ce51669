"""Shared constants for the engine."""

import re

# Feature ID validation: "001-user-authentication"
FEATURE_ID_PATTERN = re.compile(r'^[a-z0-9][a-z0-9-]*[a-z0-9]$')
MAX_FEATURE_ID_LEN = 64

# Directory names under the engine root
FEATURES_DIR = "features"
ARCHIVE_DIR = "_archive"
PROJECT_SCOPE = "_project"
LOCKS_DIR = "locks"
REVISIONS_DIR = "revisions"

CONFIG_FILE = "specflow.yaml"
META_FILE = "meta.env"
DEFAULT_ROOT = ".specflow"
ROOT_ENV_VAR = "SPECFLOW_ROOT"

# Marker left in artifact bodies for unresolved ambiguities
CLARIFICATION_MARKER_RE = re.compile(r'\[NEEDS CLARIFICATION:\s*(.+?)\s*\]')
